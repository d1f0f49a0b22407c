"""Tests for library module."""

import json
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from booklights.library import (
    Book,
    BookNotFoundError,
    Library,
    LibraryError,
)

T0 = datetime(2025, 11, 17, 9, 0, tzinfo=timezone.utc)


def at(minutes: int) -> datetime:
    return T0 + timedelta(minutes=minutes)


@pytest.fixture
def library(tmp_path):
    return Library(tmp_path / "library.json")


class TestBooks:
    """Tests for creating and listing books."""

    def test_empty_library(self, library):
        """A missing library file should behave as empty."""
        assert library.books() == []

    def test_add_book_trims(self, library):
        """Title and author should be trimmed."""
        book = library.add_book("  Dune  ", "  Frank Herbert ")
        assert book.title == "Dune"
        assert book.author == "Frank Herbert"

    def test_blank_author_is_none(self, library):
        """Blank authors should be stored as None."""
        assert library.add_book("Dune", "   ").author is None
        assert library.add_book("Emma").author is None

    def test_empty_title_rejected(self, library):
        """Empty titles should be rejected."""
        with pytest.raises(ValueError):
            library.add_book("   ")
        assert library.books() == []

    def test_books_newest_first(self, library):
        """Books should be listed by creation time, newest first."""
        library.add_book("Old", created_at=at(0))
        library.add_book("New", created_at=at(10))
        library.add_book("Middle", created_at=at(5))
        assert [b.title for b in library.books()] == ["New", "Middle", "Old"]

    def test_search_title_and_author(self, library):
        """Search should match title or author, ignoring case."""
        library.add_book("The Dispossessed", "Ursula K. Le Guin")
        library.add_book("Dune", "Frank Herbert")
        assert [b.title for b in library.books(search="dune")] == ["Dune"]
        assert [b.title for b in library.books(search="LE GUIN")] == ["The Dispossessed"]
        assert library.books(search="tolkien") == []

    def test_get_unknown_book(self, library):
        """Unknown ids should raise BookNotFoundError."""
        with pytest.raises(BookNotFoundError):
            library.get_book(uuid4())

    def test_book_not_found_is_library_error(self):
        """BookNotFoundError should be a LibraryError."""
        assert issubclass(BookNotFoundError, LibraryError)


class TestQuotes:
    """Tests for saving and listing quotes."""

    def test_save_quote(self, library):
        """Quotes should be stored under their book."""
        book = library.add_book("Dune")
        quote = library.save_quote(book.id, "  Fear is the mind-killer.  ", page="8")

        assert quote.text == "Fear is the mind-killer."
        assert quote.page == "8"
        assert quote.book_id == book.id
        assert library.get_book(book.id).quotes_count == 1

    def test_empty_quote_rejected(self, library):
        """Blank quote text should be rejected."""
        book = library.add_book("Dune")
        with pytest.raises(ValueError):
            library.save_quote(book.id, " \n ")

    def test_blank_page_and_note(self, library):
        """Blank page and note should be stored as None."""
        book = library.add_book("Dune")
        quote = library.save_quote(book.id, "Text", page=" ", note="")
        assert quote.page is None
        assert quote.note is None

    def test_quote_for_unknown_book(self, library):
        """Saving to an unknown book should fail."""
        with pytest.raises(BookNotFoundError):
            library.save_quote(uuid4(), "Text")

    def test_quotes_newest_first(self, library):
        """Quotes should be listed newest first."""
        book = library.add_book("Dune")
        library.save_quote(book.id, "first", created_at=at(1))
        library.save_quote(book.id, "third", created_at=at(3))
        library.save_quote(book.id, "second", created_at=at(2))
        assert [q.text for q in library.quotes(book.id)] == ["third", "second", "first"]

    def test_search_quotes_text_and_note(self, library):
        """Quote search should match text or note."""
        book = library.add_book("Dune")
        library.save_quote(book.id, "Fear is the mind-killer.")
        library.save_quote(book.id, "The spice must flow.", note="Favourite line")
        assert [q.text for q in library.quotes(book.id, search="MIND")] == ["Fear is the mind-killer."]
        assert [q.text for q in library.quotes(book.id, search="favourite")] == ["The spice must flow."]


class TestDerivedBookFields:
    """Tests for book convenience properties."""

    def test_last_updated_without_quotes(self):
        """Without quotes, last update is the creation time."""
        book = Book(title="Dune", created_at=at(0))
        assert book.last_updated_at == at(0)
        assert book.quotes_count == 0

    def test_last_updated_with_quotes(self, library):
        """Newest quote time should win over creation time."""
        book = library.add_book("Dune", created_at=at(0))
        library.save_quote(book.id, "one", created_at=at(5))
        library.save_quote(book.id, "two", created_at=at(3))
        assert library.get_book(book.id).last_updated_at == at(5)


class TestRecentHighlights:
    """Tests for recent highlights."""

    def test_one_quote_per_book(self, library):
        """Only the newest quote of each book should be included."""
        dune = library.add_book("Dune")
        emma = library.add_book("Emma")
        library.save_quote(dune.id, "dune old", created_at=at(1))
        library.save_quote(emma.id, "emma", created_at=at(2))
        library.save_quote(dune.id, "dune new", created_at=at(3))

        highlights = library.recent_highlights()
        assert [(b.title, q.text) for b, q in highlights] == [("Dune", "dune new"), ("Emma", "emma")]

    def test_books_without_quotes_skipped(self, library):
        """Books without quotes should not appear."""
        library.add_book("Empty")
        assert library.recent_highlights() == []

    def test_limit(self, library):
        """No more than limit entries should be returned."""
        for i in range(7):
            book = library.add_book(f"Book {i}")
            library.save_quote(book.id, f"quote {i}", created_at=at(i))

        highlights = library.recent_highlights(limit=5)
        assert len(highlights) == 5
        assert highlights[0][1].text == "quote 6"


class TestPersistence:
    """Tests for the JSON file store."""

    def test_round_trip(self, tmp_path):
        """Data written by one instance should be read by another."""
        path = tmp_path / "library.json"
        first = Library(path)
        book = first.add_book("Dune", "Frank Herbert")
        first.save_quote(book.id, "Fear is the mind-killer.", note="classic")

        second = Library(path)
        loaded = second.get_book(book.id)
        assert loaded.author == "Frank Herbert"
        assert [q.text for q in loaded.quotes] == ["Fear is the mind-killer."]
        assert loaded.quotes[0].note == "classic"

    def test_creates_parent_directory(self, tmp_path):
        """Saving should create missing directories."""
        path = tmp_path / "nested" / "dir" / "library.json"
        Library(path).add_book("Dune")
        assert path.exists()

    def test_file_is_json(self, tmp_path):
        """The library file should be plain JSON."""
        path = tmp_path / "library.json"
        Library(path).add_book("Dune")
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["version"] == 1
        assert data["books"][0]["title"] == "Dune"

    def test_no_temp_files_left(self, tmp_path):
        """Atomic writes should not leave temp files behind."""
        library = Library(tmp_path / "library.json")
        library.add_book("Dune")
        library.add_book("Emma")
        assert [p.name for p in tmp_path.iterdir()] == ["library.json"]

    def test_corrupt_file(self, tmp_path):
        """Corrupt files should raise LibraryError."""
        path = tmp_path / "library.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(LibraryError):
            Library(path).books()

    def test_unwritable_parent(self, tmp_path):
        """A parent path that is a file should raise LibraryError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("", encoding="utf-8")
        with pytest.raises(LibraryError):
            Library(blocker / "sub" / "library.json").add_book("Dune")

    def test_failed_add_book_rolled_back(self, tmp_path):
        """A book whose save failed should not stay in the library."""
        path = tmp_path / "library.json"
        library = Library(path)
        assert library.books() == []
        path.mkdir()

        with pytest.raises(LibraryError):
            library.add_book("Dune")
        assert library.books() == []

    def test_failed_save_quote_rolled_back(self, tmp_path):
        """A quote whose save failed should not stay on its book."""
        path = tmp_path / "library.json"
        library = Library(path)
        book = library.add_book("Dune")
        path.unlink()
        path.mkdir()

        with pytest.raises(LibraryError):
            library.save_quote(book.id, "The spice must flow.")
        assert library.quotes(book.id) == []

    def test_concurrent_writes_kept(self, tmp_path):
        """Books added from several threads should all reach the file."""
        path = tmp_path / "library.json"
        library = Library(path)

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda i: library.add_book(f"Book {i}"), range(40)))

        titles = {book.title for book in Library(path).books()}
        assert titles == {f"Book {i}" for i in range(40)}
