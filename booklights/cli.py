#!/usr/bin/env python3
"""
Command-line interface for Booklights.

Usage:
    # Rebuild paragraphs from recognized lines
    booklights paragraphs ./lines.json

    # Scan a page photo and print its text
    booklights scan ./page.jpg

    # Scan and save the whole page as a quote
    booklights scan ./page.jpg --save-to BOOK_ID --page 42

    # Manage the library
    booklights new-book "The Left Hand of Darkness" --author "Ursula K. Le Guin"
    booklights books --search guin
    booklights save BOOK_ID "Light is the left hand of darkness"
    booklights quotes BOOK_ID
    booklights recent

    # Serve the HTTP API
    booklights serve --port 8787
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from uuid import UUID

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )


def load_config(args: argparse.Namespace, **overrides):
    """Build config from the environment plus command-line overrides."""
    from .config import BooklightsConfig

    return BooklightsConfig.from_env(data_dir=args.data_dir, **overrides)


def open_library(args: argparse.Namespace):
    from .library import Library

    return Library(load_config(args).library_path)


def parse_book_id(value: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid book id: {value!r}") from None


def cmd_paragraphs(args: argparse.Namespace) -> int:
    """Rebuild paragraphs from a JSON lines file."""
    from .paragraphs import ParagraphReconstructor
    from .recognition import load_lines_file

    input_path = Path(args.input)
    if not input_path.is_file():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return 1

    config = load_config(args, paragraph_gap_multiplier=args.gap_multiplier)

    try:
        lines = load_lines_file(input_path)
    except (ValueError, json.JSONDecodeError) as e:
        print(f"✗ Invalid lines file: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"✗ Could not read {input_path}: {e}", file=sys.stderr)
        return 1

    text = ParagraphReconstructor(config.paragraph_gap_multiplier).reconstruct(lines)

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text, encoding="utf-8")
        print(f"✓ Wrote {len(lines)} lines as paragraphs to {output_path}")
    else:
        print(text)

    return 0


def cmd_scan(args: argparse.Namespace) -> int:
    """Scan a page image."""
    from .library import Library, LibraryError
    from .paragraphs import ParagraphReconstructor
    from .recognition import make_recognizer
    from .review import ScanReviewer

    config = load_config(
        args,
        ocr_backend=args.backend,
        ocr_language=args.language,
        paragraph_gap_multiplier=args.gap_multiplier,
    )

    recognizer = make_recognizer(config, Path(args.layout) if args.layout else None)
    reviewer = ScanReviewer(
        recognizer,
        Library(config.library_path),
        ParagraphReconstructor(config.paragraph_gap_multiplier),
    )

    review = reviewer.review(Path(args.image))
    if not review.success:
        print(f"✗ There was an error scanning your page. {review.error_message}", file=sys.stderr)
        return 1

    print(review.text)

    if args.save_to:
        try:
            quote = reviewer.save_highlight(args.save_to, review.text, page=args.page)
        except (ValueError, LibraryError) as e:
            print(f"\n✗ Failed to save: {e}", file=sys.stderr)
            return 1
        if quote is None:
            print("\n⚠ Nothing recognized, no quote saved", file=sys.stderr)
            return 1
        print(f"\n✓ Saved quote {quote.id}", file=sys.stderr)

    return 0


def cmd_books(args: argparse.Namespace) -> int:
    """List books."""
    from .library import LibraryError

    try:
        books = open_library(args).books(search=args.search)
    except LibraryError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    if not books:
        print("No books yet. Use 'booklights new-book' to create one.")
        return 0

    for book in books:
        author = f" by {book.author}" if book.author else ""
        print(f"{book.id}  {book.title}{author}  ({book.quotes_count} quotes)")
    return 0


def cmd_new_book(args: argparse.Namespace) -> int:
    """Create a book."""
    from .library import LibraryError

    try:
        book = open_library(args).add_book(args.title, args.author)
    except (ValueError, LibraryError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    print(f"✓ Created {book.title!r}: {book.id}")
    return 0


def cmd_save(args: argparse.Namespace) -> int:
    """Save a quote."""
    from .library import LibraryError

    text = args.text
    if text == "-":
        text = sys.stdin.read()

    try:
        quote = open_library(args).save_quote(args.book_id, text, page=args.page, note=args.note)
    except (ValueError, LibraryError) as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    print(f"✓ Saved quote {quote.id}")
    return 0


def cmd_quotes(args: argparse.Namespace) -> int:
    """List a book's quotes."""
    from .library import LibraryError

    try:
        quotes = open_library(args).quotes(args.book_id, search=args.search)
    except LibraryError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    for quote in quotes:
        print(quote.text)
        if quote.note:
            print(f"  Note: {quote.note}")
        details = [f"p. {quote.page}"] if quote.page else []
        details.append(quote.created_at.strftime("%Y-%m-%d"))
        print(f"  ({', '.join(details)})")
        print()
    return 0


def cmd_recent(args: argparse.Namespace) -> int:
    """Show the latest highlight from each book."""
    from .library import LibraryError

    limit = args.limit if args.limit is not None else load_config(args).recent_highlights_limit
    if limit < 1:
        print(f"✗ limit must be >= 1, got {limit}", file=sys.stderr)
        return 1

    try:
        highlights = open_library(args).recent_highlights(limit)
    except LibraryError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    for book, quote in highlights:
        print(f"{book.title}:")
        print(f"  {quote.text}")
        print()
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the HTTP API."""
    from .server import run

    run(load_config(args, host=args.host, port=args.port))
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="booklights",
        description="Scan book pages and keep the quotes you care about",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    parser.add_argument("--data-dir", help="Library directory (default: ~/.booklights)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # paragraphs command
    p_paragraphs = subparsers.add_parser(
        "paragraphs",
        help="Rebuild paragraphs from recognized lines",
        description="Read a JSON list of {text, vertical_position} records and print paragraph text",
    )
    p_paragraphs.add_argument("input", help="JSON file with recognized lines")
    p_paragraphs.add_argument("-o", "--output", help="Write text to file instead of stdout")
    p_paragraphs.add_argument("--gap-multiplier", type=float,
                              help="Median-gap multiple that starts a paragraph (default: 1.6)")
    p_paragraphs.set_defaults(func=cmd_paragraphs)

    # scan command
    p_scan = subparsers.add_parser(
        "scan",
        help="Recognize a page image and print its text",
    )
    p_scan.add_argument("image", help="Page image")
    p_scan.add_argument("--backend", choices=["tesseract", "layout"], help="OCR backend")
    p_scan.add_argument("--layout", help="Layout JSON for the layout backend (default: IMAGE.json)")
    p_scan.add_argument("-l", "--language", help="Tesseract language code (default: eng)")
    p_scan.add_argument("--gap-multiplier", type=float,
                        help="Median-gap multiple that starts a paragraph (default: 1.6)")
    p_scan.add_argument("--save-to", type=parse_book_id, metavar="BOOK_ID",
                        help="Save the page text as a quote in this book")
    p_scan.add_argument("--page", help="Page reference for the saved quote")
    p_scan.set_defaults(func=cmd_scan)

    # books command
    p_books = subparsers.add_parser("books", help="List books")
    p_books.add_argument("-s", "--search", help="Filter by title or author")
    p_books.set_defaults(func=cmd_books)

    # new-book command
    p_new_book = subparsers.add_parser("new-book", help="Create a book")
    p_new_book.add_argument("title", help="Book title")
    p_new_book.add_argument("-a", "--author", help="Book author")
    p_new_book.set_defaults(func=cmd_new_book)

    # save command
    p_save = subparsers.add_parser("save", help="Save a quote to a book")
    p_save.add_argument("book_id", type=parse_book_id, help="Book id")
    p_save.add_argument("text", help="Quote text ('-' to read stdin)")
    p_save.add_argument("--page", help="Page reference")
    p_save.add_argument("--note", help="Personal note")
    p_save.set_defaults(func=cmd_save)

    # quotes command
    p_quotes = subparsers.add_parser("quotes", help="List a book's quotes")
    p_quotes.add_argument("book_id", type=parse_book_id, help="Book id")
    p_quotes.add_argument("-s", "--search", help="Filter by quote text or note")
    p_quotes.set_defaults(func=cmd_quotes)

    # recent command
    p_recent = subparsers.add_parser("recent", help="Latest highlight from each book")
    p_recent.add_argument("-n", "--limit", type=int, help="Number of books (default: 5)")
    p_recent.set_defaults(func=cmd_recent)

    # serve command
    p_serve = subparsers.add_parser("serve", help="Run the HTTP API")
    p_serve.add_argument("--host", help="Interface to bind (default: 127.0.0.1)")
    p_serve.add_argument("--port", type=int, help="Port (default: 8787)")
    p_serve.set_defaults(func=cmd_serve)

    args = parser.parse_args()
    setup_logging(args.verbose)

    try:
        return args.func(args)
    except ValueError as e:
        # Invalid configuration
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
