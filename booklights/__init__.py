"""
Booklights - Save quotes from photographed book pages

Turns a page photo into readable text and files passages under books:
1. Recognizing text lines on a page image (Tesseract or layout JSON)
2. Rebuilding paragraphs from vertical line spacing
3. Saving selected passages as quotes in a local library
4. Browsing books, quotes and recent highlights from the CLI or HTTP API
"""

__version__ = "1.0.0"
__author__ = "Booklights"

from .config import BooklightsConfig
from .paragraphs import ParagraphReconstructor, RecognizedLine, reconstruct_paragraphs

__all__ = [
    "BooklightsConfig",
    "ParagraphReconstructor",
    "RecognizedLine",
    "reconstruct_paragraphs",
]
