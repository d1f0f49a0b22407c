"""
Local library of books and saved quotes.

Books and their quotes are kept in a single JSON file. The file is read
on first access and rewritten atomically after every change.
"""

import json
import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)

LIBRARY_FORMAT_VERSION = 1


def _now() -> datetime:
    return datetime.now(timezone.utc)


class LibraryError(Exception):
    """The library file could not be read or written."""


class BookNotFoundError(LibraryError):
    """No book with the requested id."""

    def __init__(self, book_id: UUID) -> None:
        super().__init__(f"Book not found: {book_id}")
        self.book_id = book_id


class Quote(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    text: str
    page: str | None = None
    note: str | None = None
    created_at: datetime = Field(default_factory=_now)
    book_id: UUID


class Book(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    title: str
    author: str | None = None
    created_at: datetime = Field(default_factory=_now)
    quotes: list[Quote] = Field(default_factory=list)

    @property
    def last_updated_at(self) -> datetime:
        """Most recent of the book's creation and its newest quote."""
        if not self.quotes:
            return self.created_at
        return max(self.created_at, max(q.created_at for q in self.quotes))

    @property
    def quotes_count(self) -> int:
        return len(self.quotes)


class LibraryData(BaseModel):
    version: int = LIBRARY_FORMAT_VERSION
    books: list[Book] = Field(default_factory=list)


def _matches(query: str, *fields: str | None) -> bool:
    """Case-insensitive substring match against any non-empty field."""
    needle = query.casefold()
    return any(needle in field.casefold() for field in fields if field)


def _blank_to_none(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


class Library:
    """JSON-file store for books and quotes."""

    def __init__(self, path: Path) -> None:
        """Initialize library.

        Args:
            path: Library JSON file. Created on first write if missing.
        """
        self.path = Path(path)
        self._data: LibraryData | None = None
        self._lock = threading.RLock()

    @property
    def data(self) -> LibraryData:
        with self._lock:
            if self._data is None:
                self._data = self._load()
            return self._data

    def _load(self) -> LibraryData:
        if not self.path.exists():
            logger.debug(f"No library at {self.path}, starting empty")
            return LibraryData()

        try:
            raw = self.path.read_text(encoding="utf-8")
            data = LibraryData.model_validate_json(raw)
        except (OSError, ValidationError) as e:
            raise LibraryError(f"Could not load library {self.path}: {e}") from e

        logger.debug(f"Loaded {len(data.books)} books from {self.path}")
        return data

    def save(self) -> None:
        """Write the library to disk atomically."""
        with self._lock:
            self._write(json.dumps(self.data.model_dump(mode="json"), indent=2, ensure_ascii=False))

    def _write(self, payload: str) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".library-", suffix=".tmp")
        except OSError as e:
            raise LibraryError(f"Could not write library {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except OSError as e:
            Path(tmp_name).unlink(missing_ok=True)
            raise LibraryError(f"Could not write library {self.path}: {e}") from e

    def books(self, search: str | None = None) -> list[Book]:
        """List books, newest first.

        Args:
            search: Optional case-insensitive filter on title or author
        """
        books = sorted(self.data.books, key=lambda b: b.created_at, reverse=True)
        if search:
            books = [b for b in books if _matches(search, b.title, b.author)]
        return books

    def get_book(self, book_id: UUID) -> Book:
        for book in self.data.books:
            if book.id == book_id:
                return book
        raise BookNotFoundError(book_id)

    def add_book(
        self,
        title: str,
        author: str | None = None,
        created_at: datetime | None = None,
    ) -> Book:
        """Create a new book.

        Args:
            title: Book title, surrounding whitespace removed
            author: Optional author. Blank values are stored as None.
            created_at: Creation time, defaults to now

        Returns:
            The new book

        Raises:
            ValueError: If the title is empty
        """
        title = (title or "").strip()
        if not title:
            raise ValueError("Book title cannot be empty")

        book = Book(title=title, author=_blank_to_none(author))
        if created_at is not None:
            book.created_at = created_at

        with self._lock:
            self.data.books.append(book)
            try:
                self.save()
            except LibraryError:
                self.data.books.remove(book)
                raise

        logger.info(f"Created book {book.title!r} ({book.id})")
        return book

    def save_quote(
        self,
        book_id: UUID,
        text: str,
        page: str | None = None,
        note: str | None = None,
        created_at: datetime | None = None,
    ) -> Quote:
        """Store a quote under a book.

        Args:
            book_id: Target book
            text: Quote body, surrounding whitespace removed
            page: Optional page reference
            note: Optional personal note
            created_at: Creation time, defaults to now

        Returns:
            The stored quote

        Raises:
            ValueError: If the text is empty
            BookNotFoundError: If the book does not exist
        """
        text = (text or "").strip()
        if not text:
            raise ValueError("Quote text cannot be empty")

        with self._lock:
            book = self.get_book(book_id)
            quote = Quote(
                text=text,
                page=_blank_to_none(page),
                note=_blank_to_none(note),
                book_id=book.id,
            )
            if created_at is not None:
                quote.created_at = created_at

            book.quotes.append(quote)
            try:
                self.save()
            except LibraryError:
                book.quotes.remove(quote)
                raise

        logger.info(f"Saved quote to {book.title!r} ({len(text)} chars)")
        return quote

    def quotes(self, book_id: UUID, search: str | None = None) -> list[Quote]:
        """List a book's quotes, newest first.

        Args:
            book_id: Book to list
            search: Optional case-insensitive filter on quote text or note
        """
        quotes = sorted(self.get_book(book_id).quotes, key=lambda q: q.created_at, reverse=True)
        if search:
            quotes = [q for q in quotes if _matches(search, q.text, q.note)]
        return quotes

    def recent_highlights(self, limit: int = 5) -> list[tuple[Book, Quote]]:
        """Most recent quote per book, ordered by quote recency.

        Args:
            limit: Maximum number of entries
        """
        latest = [
            (book, max(book.quotes, key=lambda q: q.created_at))
            for book in self.data.books
            if book.quotes
        ]
        latest.sort(key=lambda pair: pair[1].created_at, reverse=True)
        return latest[:limit]
