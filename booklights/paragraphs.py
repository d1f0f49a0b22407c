"""
Paragraph reconstruction from recognized text lines.

Text recognition reports one entry per visual line together with its
vertical position, but no paragraph structure. Paragraphs are inferred
from the spacing between consecutive lines: a gap well above the typical
line-to-line spacing marks a paragraph break.

Vertical positions use a bottom-left origin, so a larger value is higher
on the page and is read first. Recognizers that work in top-origin pixel
space convert before handing lines over (see recognition.py).
"""

import logging
import statistics
from dataclasses import dataclass
from typing import Iterable

logger = logging.getLogger(__name__)

# Gaps larger than median * multiplier start a new paragraph.
# Values between 1.4 and 1.8 work for most book layouts.
DEFAULT_GAP_MULTIPLIER = 1.6

PARAGRAPH_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class RecognizedLine:
    """A single line of text from one recognition pass.

    Attributes:
        text: Raw recognized content
        vertical_position: Position on the page, larger values are higher up
    """

    text: str
    vertical_position: float


def line_gaps(ordered: list[RecognizedLine]) -> list[float]:
    """Vertical gap before each line after the first.

    Args:
        ordered: Lines already sorted top-to-bottom

    Returns:
        One gap per consecutive pair, clamped at zero
    """
    return [
        max(prev.vertical_position - curr.vertical_position, 0.0)
        for prev, curr in zip(ordered, ordered[1:])
    ]


def paragraph_gap_threshold(
    gaps: list[float],
    multiplier: float = DEFAULT_GAP_MULTIPLIER,
) -> float | None:
    """Compute the gap size above which a new paragraph starts.

    Args:
        gaps: Gaps between consecutive lines
        multiplier: Scale applied to the median gap

    Returns:
        Threshold, or None when spacing carries no usable signal
        (no gaps, or a zero median)
    """
    if not gaps:
        return None

    median = statistics.median(gaps)
    if median <= 0:
        return None

    return median * multiplier


class ParagraphReconstructor:
    """Groups recognized lines into paragraphs by vertical spacing."""

    def __init__(self, gap_multiplier: float = DEFAULT_GAP_MULTIPLIER) -> None:
        """Initialize reconstructor.

        Args:
            gap_multiplier: Median-gap multiple that counts as a paragraph break
        """
        if gap_multiplier <= 0:
            raise ValueError(f"gap_multiplier must be > 0, got {gap_multiplier}")
        self.gap_multiplier = gap_multiplier

    @staticmethod
    def sort_lines(lines: Iterable[RecognizedLine]) -> list[RecognizedLine]:
        """Order lines top-to-bottom. Equal positions keep their input order."""
        return sorted(lines, key=lambda line: line.vertical_position, reverse=True)

    def group(self, lines: Iterable[RecognizedLine]) -> list[list[str]]:
        """Split lines into paragraphs.

        Args:
            lines: Recognized lines in any order

        Returns:
            List of paragraphs, each a list of stripped, non-empty line texts
        """
        ordered = self.sort_lines(lines)
        gaps = line_gaps(ordered)
        threshold = paragraph_gap_threshold(gaps, self.gap_multiplier)

        if threshold is None:
            texts = [text for text in (line.text.strip() for line in ordered) if text]
            return [texts] if texts else []

        paragraphs: list[list[str]] = []
        current: list[str] = []

        for index, line in enumerate(ordered):
            text = line.text.strip()
            if not text:
                continue

            # gaps[index - 1] is measured from the previous line, blank or not
            if index > 0 and gaps[index - 1] > threshold and current:
                paragraphs.append(current)
                current = []

            current.append(text)

        if current:
            paragraphs.append(current)

        logger.debug(
            f"Grouped {len(ordered)} lines into {len(paragraphs)} paragraphs "
            f"(threshold={threshold:.4f})"
        )
        return paragraphs

    def reconstruct(self, lines: Iterable[RecognizedLine]) -> str:
        """Rebuild paragraph-broken prose from recognized lines.

        Lines within a paragraph are joined with a single space and
        paragraphs are separated by a blank line.

        Args:
            lines: Recognized lines in any order

        Returns:
            Formatted text, empty if there is nothing to show
        """
        return PARAGRAPH_SEPARATOR.join(" ".join(words) for words in self.group(lines))


def reconstruct_paragraphs(
    lines: Iterable[RecognizedLine],
    gap_multiplier: float = DEFAULT_GAP_MULTIPLIER,
) -> str:
    """Convenience wrapper around ParagraphReconstructor.reconstruct."""
    return ParagraphReconstructor(gap_multiplier).reconstruct(lines)
