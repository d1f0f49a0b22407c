"""
Text recognition backends.

Each recognizer turns a page image into RecognizedLine values in the
bottom-origin normalized space used by the paragraph reconstructor
(0.0 = bottom edge, 1.0 = top edge). Any failure is reported as a
RecognitionError so callers only handle one exception type.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from pathlib import Path

import pytesseract
from PIL import Image, ImageOps

from .config import BooklightsConfig
from .paragraphs import RecognizedLine

logger = logging.getLogger(__name__)

# Layout categories that are not part of the page body
EXCLUDED_CATEGORIES = {"Page-header", "Page-footer", "Page-number"}


class RecognitionError(Exception):
    """Text recognition could not produce lines for an image."""


def load_page_image(image_path: Path) -> Image.Image:
    """Open an image for recognition.

    EXIF orientation is applied so phone photos are upright, and the
    result is converted to RGB.

    Args:
        image_path: Path to image file

    Returns:
        Loaded PIL image

    Raises:
        RecognitionError: If the image cannot be read
    """
    try:
        with Image.open(image_path) as img:
            upright = ImageOps.exif_transpose(img)
            return upright.convert("RGB")
    except (OSError, ValueError) as e:
        raise RecognitionError(f"Unable to open image {image_path}: {e}") from e


def to_bottom_origin(bottom_px: float, image_height: int) -> float:
    """Convert a top-origin pixel y to the normalized bottom-origin space."""
    return 1.0 - (bottom_px / image_height)


class TextRecognizer(ABC):
    """Interface for recognition backends."""

    @abstractmethod
    def recognize(self, image_path: Path) -> list[RecognizedLine]:
        """Recognize text lines in an image.

        Raises:
            RecognitionError: If recognition fails
        """


class TesseractRecognizer(TextRecognizer):
    """Runs Tesseract and reports one RecognizedLine per detected line."""

    def __init__(
        self,
        language: str = "eng",
        min_confidence: float = 0.0,
        tesseract_cmd: str | None = None,
    ) -> None:
        """Initialize recognizer.

        Args:
            language: Tesseract language code(s), e.g. 'eng' or 'eng+fra'
            min_confidence: Words below this confidence are dropped
            tesseract_cmd: Path to tesseract binary. If None, pytesseract finds it.
        """
        self.language = language
        self.min_confidence = min_confidence
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd

    def recognize(self, image_path: Path) -> list[RecognizedLine]:
        image = load_page_image(image_path)

        try:
            data = pytesseract.image_to_data(
                image,
                lang=self.language,
                output_type=pytesseract.Output.DICT,
            )
        except pytesseract.TesseractNotFoundError as e:
            raise RecognitionError("Tesseract executable not found") from e
        except pytesseract.TesseractError as e:
            raise RecognitionError(f"Tesseract failed on {image_path}: {e}") from e

        lines = self._lines_from_data(data, image.height)
        logger.debug(f"Recognized {len(lines)} lines in {Path(image_path).name}")
        return lines

    def _lines_from_data(self, data: dict, image_height: int) -> list[RecognizedLine]:
        """Group Tesseract word rows into lines.

        Words are keyed by (block, paragraph, line). A line's position is
        the bottom edge of the union of its word boxes.
        """
        grouped: dict[tuple[int, int, int], list[tuple[int, str]]] = {}
        bottoms: dict[tuple[int, int, int], int] = {}

        for i, raw_text in enumerate(data["text"]):
            text = (raw_text or "").strip()
            if not text:
                continue

            try:
                confidence = float(data["conf"][i])
            except (TypeError, ValueError):
                continue
            if confidence < self.min_confidence:
                continue

            key = (int(data["block_num"][i]), int(data["par_num"][i]), int(data["line_num"][i]))
            bottom = int(data["top"][i]) + int(data["height"][i])

            grouped.setdefault(key, []).append((int(data["left"][i]), text))
            bottoms[key] = max(bottoms.get(key, bottom), bottom)

        lines = []
        for key in sorted(grouped):
            words = [text for _, text in sorted(grouped[key])]
            lines.append(RecognizedLine(
                text=" ".join(words),
                vertical_position=to_bottom_origin(bottoms[key], image_height),
            ))
        return lines


class LayoutJSONRecognizer(TextRecognizer):
    """Reads precomputed layout JSON produced by a layout OCR model.

    The file is a list of blocks, each with a top-origin pixel bbox
    [x1, y1, x2, y2], a category and the block text. Multi-line blocks
    are split evenly across the bbox height.
    """

    def __init__(self, layout_path: Path | None = None) -> None:
        """Initialize recognizer.

        Args:
            layout_path: Layout JSON to read. If None, uses the image path
                with a .json suffix.
        """
        self.layout_path = Path(layout_path) if layout_path else None

    def recognize(self, image_path: Path) -> list[RecognizedLine]:
        image_path = Path(image_path)
        layout_path = self.layout_path or image_path.with_suffix(".json")

        image_height = load_page_image(image_path).height
        blocks = self._load_blocks(layout_path)

        lines: list[RecognizedLine] = []
        for block in blocks:
            lines.extend(self._lines_from_block(block, image_height))

        logger.debug(f"Read {len(lines)} lines from {layout_path.name}")
        return lines

    def _load_blocks(self, layout_path: Path) -> list[dict]:
        try:
            with open(layout_path, "r", encoding="utf-8") as f:
                blocks = json.load(f)
        except FileNotFoundError as e:
            raise RecognitionError(f"Layout file not found: {layout_path}") from e
        except (OSError, json.JSONDecodeError) as e:
            raise RecognitionError(f"Could not read layout {layout_path}: {e}") from e

        if not isinstance(blocks, list):
            raise RecognitionError(f"Layout {layout_path} must be a list of blocks")
        return blocks

    def _lines_from_block(self, block: dict, image_height: int) -> list[RecognizedLine]:
        if not isinstance(block, dict):
            return []
        category = block.get("category", "Text")
        if not isinstance(category, str) or category in EXCLUDED_CATEGORIES:
            return []

        text = block.get("text")
        bbox = block.get("bbox")
        if not isinstance(text, str) or not text.strip():
            return []
        if not isinstance(bbox, (list, tuple)) or len(bbox) != 4:
            return []

        try:
            top, bottom = float(bbox[1]), float(bbox[3])
        except (TypeError, ValueError):
            return []
        if not (math.isfinite(top) and math.isfinite(bottom)):
            return []

        block_lines = text.splitlines()
        line_height = (bottom - top) / len(block_lines)

        return [
            RecognizedLine(
                text=line_text,
                vertical_position=to_bottom_origin(top + (i + 1) * line_height, image_height),
            )
            for i, line_text in enumerate(block_lines)
        ]


def lines_from_records(records: list[dict]) -> list[RecognizedLine]:
    """Build lines from plain {"text", "vertical_position"} records.

    Raises:
        ValueError: If a record is missing a field or has a bad position
    """
    if not isinstance(records, list):
        raise ValueError("Expected a list of line records")

    lines = []
    for index, record in enumerate(records):
        try:
            text = record["text"]
            position = float(record["vertical_position"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Invalid line record at index {index}: {record!r}") from e
        if not math.isfinite(position):
            raise ValueError(f"Line position at index {index} must be finite")
        if not isinstance(text, str):
            raise ValueError(f"Line text at index {index} must be a string")
        lines.append(RecognizedLine(text=text, vertical_position=position))
    return lines


def load_lines_file(path: Path) -> list[RecognizedLine]:
    """Load line records from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        records = json.load(f)
    return lines_from_records(records)


def make_recognizer(config: BooklightsConfig, layout_path: Path | None = None) -> TextRecognizer:
    """Create the recognizer selected by config.ocr_backend."""
    if config.ocr_backend == "layout":
        return LayoutJSONRecognizer(layout_path=layout_path)
    return TesseractRecognizer(
        language=config.ocr_language,
        min_confidence=config.min_word_confidence,
    )
