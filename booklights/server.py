"""
Booklights HTTP API

Exposes paragraph reconstruction, page scanning and the quote library.
"""

import logging
from pathlib import Path
from uuid import UUID

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .config import BooklightsConfig
from .library import Book, BookNotFoundError, Library, LibraryError
from .paragraphs import ParagraphReconstructor, RecognizedLine
from .recognition import make_recognizer
from .review import ScanReviewer

logger = logging.getLogger(__name__)


class LineIn(BaseModel):
    text: str
    vertical_position: float = Field(allow_inf_nan=False)


class ParagraphsRequest(BaseModel):
    lines: list[LineIn]
    gap_multiplier: float | None = Field(default=None, allow_inf_nan=False)


class ScanRequest(BaseModel):
    image_path: str
    layout_path: str | None = None


class NewBookRequest(BaseModel):
    title: str
    author: str | None = None


class NewQuoteRequest(BaseModel):
    text: str
    page: str | None = None
    note: str | None = None


def book_summary(book: Book) -> dict:
    """Book fields for list views, without the quote bodies."""
    return {
        "id": str(book.id),
        "title": book.title,
        "author": book.author,
        "created_at": book.created_at.isoformat(),
        "last_updated_at": book.last_updated_at.isoformat(),
        "quotes_count": book.quotes_count,
    }


def create_app(config: BooklightsConfig | None = None) -> FastAPI:
    """Build the API for a given configuration."""
    config = config or BooklightsConfig.from_env()
    library = Library(config.library_path)
    reconstructor = ParagraphReconstructor(config.paragraph_gap_multiplier)

    app = FastAPI(title="Booklights")
    app.state.config = config
    app.state.library = library

    # CORS for local dev
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_book_or_404(book_id: UUID) -> Book:
        try:
            return library.get_book(book_id)
        except BookNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {
            "status": "ok",
            "library": str(config.library_path),
            "ocr_backend": config.ocr_backend,
        }

    @app.post("/paragraphs")
    async def paragraphs(request: ParagraphsRequest):
        """Rebuild paragraph text from recognized lines."""
        lines = [RecognizedLine(line.text, line.vertical_position) for line in request.lines]

        if request.gap_multiplier is None:
            text = reconstructor.reconstruct(lines)
        else:
            try:
                text = ParagraphReconstructor(request.gap_multiplier).reconstruct(lines)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        return {"text": text}

    @app.post("/scan")
    def scan(request: ScanRequest):
        """Recognize a page image and return its paragraph text."""
        image_path = Path(request.image_path).expanduser()
        layout_path = Path(request.layout_path).expanduser() if request.layout_path else None

        reviewer = ScanReviewer(make_recognizer(config, layout_path), library, reconstructor)
        review = reviewer.review(image_path)

        return {
            "image_path": str(review.image_path),
            "success": review.success,
            "text": review.text,
            "line_count": review.line_count,
            "error": review.error_message,
        }

    @app.get("/books")
    def list_books(search: str | None = None):
        """List books, newest first."""
        try:
            books = library.books(search=search)
        except LibraryError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return {"books": [book_summary(b) for b in books]}

    @app.post("/books", status_code=201)
    def create_book(request: NewBookRequest):
        """Create a book."""
        try:
            book = library.add_book(request.title, request.author)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except LibraryError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return book_summary(book)

    @app.get("/books/{book_id}")
    def get_book(book_id: UUID):
        """Get a book with all of its quotes."""
        return get_book_or_404(book_id).model_dump(mode="json")

    @app.get("/books/{book_id}/quotes")
    def list_quotes(book_id: UUID, search: str | None = None):
        """List a book's quotes, newest first."""
        get_book_or_404(book_id)
        quotes = library.quotes(book_id, search=search)
        return {"quotes": [q.model_dump(mode="json") for q in quotes]}

    @app.post("/books/{book_id}/quotes", status_code=201)
    def create_quote(book_id: UUID, request: NewQuoteRequest):
        """Save a quote under a book."""
        get_book_or_404(book_id)
        try:
            quote = library.save_quote(book_id, request.text, page=request.page, note=request.note)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except LibraryError as e:
            raise HTTPException(status_code=500, detail=str(e))
        return quote.model_dump(mode="json")

    @app.get("/highlights/recent")
    def recent_highlights(limit: int | None = None):
        """Most recent quote per book."""
        if limit is None:
            limit = config.recent_highlights_limit
        if limit < 1:
            raise HTTPException(status_code=400, detail="limit must be >= 1")

        return {
            "highlights": [
                {"book": book_summary(book), "quote": quote.model_dump(mode="json")}
                for book, quote in library.recent_highlights(limit)
            ]
        }

    return app


def run(config: BooklightsConfig) -> None:
    """Serve the API with uvicorn."""
    import uvicorn

    logger.info(f"Starting server on {config.host}:{config.port}")
    logger.info(f"Library: {config.library_path}")
    uvicorn.run(create_app(config), host=config.host, port=config.port)
