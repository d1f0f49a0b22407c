"""
Scan review: recognize a page, rebuild its paragraphs and save highlights.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

from .library import Library, Quote
from .paragraphs import ParagraphReconstructor
from .recognition import RecognitionError, TextRecognizer

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "Please try again."


@dataclass
class ScanReview:
    """Result of scanning a single page."""

    image_path: Path
    success: bool
    text: str = ""
    line_count: int = 0
    error_message: str | None = None


class ScanReviewer:
    """Runs the scan-to-quote flow for page images."""

    def __init__(
        self,
        recognizer: TextRecognizer,
        library: Library,
        reconstructor: ParagraphReconstructor | None = None,
    ) -> None:
        self.recognizer = recognizer
        self.library = library
        self.reconstructor = reconstructor or ParagraphReconstructor()

    def review(self, image_path: Path) -> ScanReview:
        """Recognize a page and rebuild its text as paragraphs.

        Recognition failures are reported in the result, not raised.
        """
        image_path = Path(image_path)
        try:
            lines = self.recognizer.recognize(image_path)
        except RecognitionError as e:
            logger.warning(f"Recognition failed for {image_path.name}: {e}")
            return ScanReview(
                image_path=image_path,
                success=False,
                error_message=RETRY_MESSAGE,
            )

        text = self.reconstructor.reconstruct(lines)
        logger.info(f"Scanned {image_path.name}: {len(lines)} lines, {len(text)} chars")

        return ScanReview(
            image_path=image_path,
            success=True,
            text=text,
            line_count=len(lines),
        )

    def save_highlight(
        self,
        book_id: UUID,
        selected_text: str,
        page: str | None = None,
        note: str | None = None,
    ) -> Quote | None:
        """Save a selected passage as a quote.

        Returns:
            The stored quote, or None if the selection is blank
        """
        if not selected_text or not selected_text.strip():
            logger.debug("Ignoring blank selection")
            return None
        return self.library.save_quote(book_id, selected_text, page=page, note=note)
