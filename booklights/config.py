"""
Configuration for Booklights.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .paragraphs import DEFAULT_GAP_MULTIPLIER

ENV_PREFIX = "BOOKLIGHTS_"
VALID_BACKENDS = ("tesseract", "layout")


@dataclass
class BooklightsConfig:
    """Configuration for scanning and the quote library.

    Attributes:
        data_dir: Directory holding the library file

        # Paragraph reconstruction
        paragraph_gap_multiplier: Median-gap multiple treated as a paragraph break

        # OCR settings
        ocr_backend: 'tesseract' to run OCR, 'layout' to read layout JSON next to each image
        ocr_language: Tesseract language code
        min_word_confidence: Words below this confidence (0-100) are dropped

        # Library
        recent_highlights_limit: Number of books shown in recent highlights

        # Server
        host: Interface for the HTTP API
        port: Port for the HTTP API
    """

    data_dir: Path = Path("~/.booklights")

    paragraph_gap_multiplier: float = DEFAULT_GAP_MULTIPLIER

    ocr_backend: Literal["tesseract", "layout"] = "tesseract"
    ocr_language: str = "eng"
    min_word_confidence: float = 0.0

    recent_highlights_limit: int = 5

    host: str = "127.0.0.1"
    port: int = 8787

    def __post_init__(self) -> None:
        """Validate and convert paths."""
        self.data_dir = Path(self.data_dir).expanduser()

        if self.paragraph_gap_multiplier <= 0:
            raise ValueError(
                f"paragraph_gap_multiplier must be > 0, got {self.paragraph_gap_multiplier}"
            )

        if self.ocr_backend not in VALID_BACKENDS:
            raise ValueError(f"Invalid ocr_backend: {self.ocr_backend!r}. Valid: {VALID_BACKENDS}")

        if not self.ocr_language or not self.ocr_language.strip():
            raise ValueError("ocr_language cannot be empty")

        if not 0 <= self.min_word_confidence <= 100:
            raise ValueError(
                f"min_word_confidence must be in [0, 100], got {self.min_word_confidence}"
            )

        if self.recent_highlights_limit < 1:
            raise ValueError(
                f"recent_highlights_limit must be >= 1, got {self.recent_highlights_limit}"
            )

        if not 0 < self.port < 65536:
            raise ValueError(f"port must be in 1-65535, got {self.port}")

    @classmethod
    def from_env(cls, **overrides) -> "BooklightsConfig":
        """Build config from BOOKLIGHTS_* environment variables.

        Keyword overrides win over the environment. Overrides that are None
        are ignored so CLI defaults can be passed straight through.
        """
        values: dict = {}
        env = {
            "data_dir": str,
            "paragraph_gap_multiplier": float,
            "ocr_backend": str,
            "ocr_language": str,
            "min_word_confidence": float,
            "recent_highlights_limit": int,
            "host": str,
            "port": int,
        }
        for name, convert in env.items():
            raw = os.getenv(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            try:
                values[name] = convert(raw)
            except ValueError:
                raise ValueError(f"Invalid value for {ENV_PREFIX}{name.upper()}: {raw!r}") from None

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def library_path(self) -> Path:
        """Path to the JSON library file."""
        return self.data_dir / "library.json"
