#!/usr/bin/env python3
"""Reading tracker CLI - catalog, notes and the shared feed."""
import argparse
import asyncio
import sys
import json
from datetime import datetime, timezone
from tabulate import tabulate
from readshelf.async_client import AsyncGoogleBooksClient
from readshelf.bucketing import bucket
from readshelf.client import GoogleBooksClient
from readshelf.config import Config
from readshelf.database import Database, AsyncDatabase
from readshelf.dedup import DedupIndex
from readshelf.display import filter_notes, format_count, format_relative_date, format_time_ago
from readshelf.errors import ShelfError
from readshelf.models import Actor, STATUSES
from readshelf.mutations import OptimisticMutationCoordinator
from readshelf.purchase import resolve
from readshelf.search import DebouncedSearchController, SearchResult
from readshelf import views
import logging

logger = logging.getLogger(__name__)


def setup_database(config: Config) -> Database:
    """Open the connection pool."""
    return Database(config.DATABASE_URL)


def make_coordinator(store, config: Config) -> OptimisticMutationCoordinator:
    return OptimisticMutationCoordinator(
        store,
        Actor(config.ACTOR_ID, config.ACTOR_NAME),
        on_error=lambda message: print(f"❌ {message}", file=sys.stderr),
    )


def truncate(text: str, width: int) -> str:
    return text[:width] + "..." if len(text) > width else text


def display_results(results, format_type: str):
    """Display search results in specified format."""
    if format_type == "table":
        headers = ["#", "Title", "Author", "Published", "In Library"]
        rows = [
            [
                i,
                truncate(result.candidate.title, 50),
                truncate(result.candidate.authors_str, 30),
                result.candidate.published_date or "Unknown",
                "yes" if result.exists else "",
            ]
            for i, result in enumerate(results, 1)
        ]
        print("\n" + tabulate(rows, headers=headers, tablefmt="grid"))

    elif format_type == "json":
        data = [
            {
                "external_id": result.candidate.external_id,
                "title": result.candidate.title,
                "authors": result.candidate.authors,
                "published_date": result.candidate.published_date,
                "cover_url": result.candidate.cover_url,
                "exists": result.exists,
            }
            for result in results
        ]
        print(json.dumps(data, indent=2))

    elif format_type == "compact":
        for i, result in enumerate(results, 1):
            marker = " [in library]" if result.exists else ""
            print(f"{i}. {result.candidate.title} - {result.candidate.authors_str}{marker}")


def display_notes(notes, now: datetime, show_book: bool = False):
    """Print notes grouped into date sections."""
    for label, section in bucket(notes, now):
        print(f"\n{label}")
        print("-" * len(label))
        for note in section:
            book = f" ({note.book_title} - {note.book_author})" if show_book and note.book_title else ""
            shared = " [shared]" if note.is_shared else ""
            print(f"  {note.id}  {format_relative_date(note.created_at, now)}{shared}{book}")
            print(f"    {note.content}")


def pick(results, number: int):
    if not 1 <= number <= len(results):
        raise ShelfError(f"Pick must be between 1 and {len(results)}")
    return results[number - 1]


def search_books_sync(args, config: Config) -> int:
    """Search with the blocking client and mark books already in the library."""
    db = setup_database(config)

    try:
        with GoogleBooksClient(
            api_key=config.GOOGLE_BOOKS_API_KEY,
            timeout=config.DEFAULT_TIMEOUT,
            max_retries=config.DEFAULT_MAX_RETRIES
        ) as client:
            candidates = client.search(args.query, max_results=config.SEARCH_PAGE_SIZE)
            index = DedupIndex.from_rows(db.select("books", columns=["title", "author"]))
            results = [SearchResult(c, index.contains(c.key)) for c in candidates]
            logger.info(f"Found {len(results)} books")
            display_results(results, args.format)
            return 0
    finally:
        db.close()


async def search_books_async(args, config: Config) -> int:
    """Search through the controller; optionally add one of the results."""
    db = setup_database(config)
    store = AsyncDatabase(db)

    try:
        async with AsyncGoogleBooksClient(
            api_key=config.GOOGLE_BOOKS_API_KEY,
            timeout=config.DEFAULT_TIMEOUT
        ) as client:
            controller = DebouncedSearchController(
                client,
                store,
                coordinator=make_coordinator(store, config),
                delay=config.SEARCH_DEBOUNCE_SECONDS,
                page_size=config.SEARCH_PAGE_SIZE,
                min_length=config.MIN_QUERY_LENGTH,
            )
            state = await controller.search_now(args.query)
            if state.error:
                print(f"❌ {state.error}", file=sys.stderr)
                return 1

            number = getattr(args, "pick", None)
            if number is not None:
                result = pick(state.results, number)
                outcome = await controller.add(result.candidate)
                if not outcome.ok:
                    return 1
                print(f"✅ Added '{outcome.value.title}' to your library")

            display_results(state.results, args.format)
            return 0
    finally:
        db.close()


def show_purchase_options(args, config: Config) -> int:
    with GoogleBooksClient(
        api_key=config.GOOGLE_BOOKS_API_KEY,
        timeout=config.DEFAULT_TIMEOUT,
        max_retries=config.DEFAULT_MAX_RETRIES
    ) as client:
        candidates = client.search(args.query, max_results=config.SEARCH_PAGE_SIZE)
    if not candidates:
        print("No books found")
        return 1
    candidate = pick(candidates, args.pick)
    print(f"\n{candidate.title} - {candidate.authors_str}")
    rows = [[option.kind, option.retailer, option.url] for option in resolve(candidate)]
    print(tabulate(rows, headers=["Kind", "Retailer", "URL"], tablefmt="grid"))
    return 0


async def run_store_command(args, config: Config) -> int:
    """Commands that only talk to the catalog/social store."""
    db = setup_database(config)
    store = AsyncDatabase(db)
    coordinator = make_coordinator(store, config)
    now = datetime.now(timezone.utc)

    try:
        command = args.command

        if command == "library":
            library = await views.load_library(store, args.status)
            rows = [
                [item.id, truncate(item.title, 40), truncate(item.author, 25),
                 "★" * item.rating, item.ideas_count]
                for item in library.items
            ]
            print(f"\n{library.status}")
            print(tabulate(rows, headers=["ID", "Title", "Author", "Rating", "Notes"], tablefmt="grid"))
            return 0

        if command == "notes":
            detail = await views.load_book(store, args.book_id)
            print(f"{detail.item.title} - {detail.item.author} ({detail.item.ideas_count} notes)")
            display_notes(detail.notes, now)
            return 0

        if command == "insights":
            notes = filter_notes(await views.load_insights(store), args.query)
            display_notes(notes, now, show_book=True)
            return 0

        if command == "feed":
            feed = await views.load_feed(store, coordinator.actor)
            rows = [
                [note.id, truncate(note.book_title or "", 30), truncate(note.content, 50),
                 format_count(note.likes_count) + (" ♥" if feed.is_liked(note.id) else ""),
                 format_count(note.comments_count), format_time_ago(note.shared_at, now)]
                for note in feed.notes
            ]
            print(tabulate(rows, headers=["ID", "Book", "Post", "Likes", "Comments", "Shared"], tablefmt="grid"))
            return 0

        if command == "comments":
            thread = await views.load_comments(store, args.note_id)
            print(thread.note.content)
            for comment in thread.comments:
                print(f"  {comment.author_name} · {format_time_ago(comment.created_at, now)}: {comment.content}")
            return 0

        if command in ("note", "delete-note", "rate", "status", "delete", "reconcile"):
            detail = await views.load_book(store, args.book_id)
            if command == "note":
                pending = coordinator.add_note(detail, args.text)
            elif command == "delete-note":
                pending = coordinator.delete_note(detail, args.note_id)
            elif command == "rate":
                pending = coordinator.set_rating(detail.item, args.stars)
            elif command == "status":
                pending = coordinator.set_status(detail.item, args.status)
            elif command == "reconcile":
                pending = coordinator.reconcile_ideas_count(detail.item)
            else:
                pending = coordinator.delete_item(
                    [detail.item],
                    detail.item.id,
                    lambda item: args.yes or confirm(f"Remove '{item.title}' from your library? [y/N] "),
                )
            outcome = await pending
            if outcome.cancelled:
                print("Cancelled")
                return 0
            if outcome.error is not None:
                return 1
            print(f"✅ {detail.item.title}: rating {detail.item.rating}, {detail.item.status}, "
                  f"{detail.item.ideas_count} notes")
            return 0

        if command in ("share", "comment"):
            thread = await views.load_comments(store, args.note_id)
            if command == "share":
                outcome = await coordinator.share(thread.note, args.text)
            else:
                outcome = await coordinator.add_comment(thread, args.text)
            return 0 if outcome.ok else 1

        if command in ("unshare", "like"):
            feed = await views.load_feed(store, coordinator.actor)
            if command == "unshare":
                outcome = await coordinator.unshare(feed, args.note_id)
            else:
                outcome = await coordinator.toggle_like(feed, args.note_id)
                if outcome.ok:
                    state = "Liked" if feed.is_liked(args.note_id) else "Unliked"
                    print(f"✅ {state} ({feed.find(args.note_id).likes_count} likes)")
            return 0 if outcome.ok else 1

        raise ShelfError(f"Unknown command: {command}")

    finally:
        await coordinator.drain()
        db.close()


def confirm(prompt: str) -> bool:
    return input(prompt).strip().lower() in ("y", "yes")


def show_stats(args, config: Config) -> int:
    """Show database statistics."""
    db = setup_database(config)

    try:
        stats = db.get_stats()

        print("\n" + "=" * 50)
        print("LIBRARY STATISTICS")
        print("=" * 50)
        print(f"Books in library: {stats['total_books']}")
        print(f"Notes: {stats['total_notes']}")
        print(f"Shared notes: {stats['shared_notes']}")
        print(f"Comments: {stats['total_comments']}")
        print("=" * 50 + "\n")
        return 0

    finally:
        db.close()


def init_db(args, config: Config) -> int:
    db = setup_database(config)
    try:
        db.init_schema()
        print("✅ Database schema ready")
        return 0
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="readshelf - reading tracker with a shared notes feed",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Search and see which books are already in your library
  %(prog)s search "dune"

  # Add the second search result
  %(prog)s add "dune" --pick 2

  # Notes for a book, grouped by date
  %(prog)s notes <book-id>

  # Toggle like on a shared post
  %(prog)s like <note-id>
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create tables and triggers")
    subparsers.add_parser("stats", help="Show library statistics")

    search_parser = subparsers.add_parser("search", help="Search for books")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument("--format", choices=["table", "json", "compact"], default="table", help="Output format")
    search_parser.add_argument("--async", dest="use_async", action="store_true", help="Use async client")

    add_parser = subparsers.add_parser("add", help="Search and add a result to the library")
    add_parser.add_argument("query", help="Search query")
    add_parser.add_argument("--pick", type=int, required=True, help="Result number to add")
    add_parser.add_argument("--format", choices=["table", "json", "compact"], default="compact", help="Output format")

    purchase_parser = subparsers.add_parser("purchase", help="Where to buy or borrow a book")
    purchase_parser.add_argument("query", help="Search query")
    purchase_parser.add_argument("--pick", type=int, default=1, help="Result number (default: 1)")

    library_parser = subparsers.add_parser("library", help="List books by status")
    library_parser.add_argument("--status", choices=list(STATUSES) + ["Reading"], default="To Read", help="Reading status")

    notes_parser = subparsers.add_parser("notes", help="Show a book's notes")
    notes_parser.add_argument("book_id")

    note_parser = subparsers.add_parser("note", help="Add a note to a book")
    note_parser.add_argument("book_id")
    note_parser.add_argument("text")

    delete_note_parser = subparsers.add_parser("delete-note", help="Delete a note")
    delete_note_parser.add_argument("book_id")
    delete_note_parser.add_argument("note_id")

    rate_parser = subparsers.add_parser("rate", help="Rate a book (same rating again clears it)")
    rate_parser.add_argument("book_id")
    rate_parser.add_argument("stars", type=int, choices=range(1, 6))

    status_parser = subparsers.add_parser("status", help="Change a book's reading status")
    status_parser.add_argument("book_id")
    status_parser.add_argument("status", choices=STATUSES)

    delete_parser = subparsers.add_parser("delete", help="Remove a book from the library")
    delete_parser.add_argument("book_id")
    delete_parser.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    reconcile_parser = subparsers.add_parser("reconcile", help="Recount a book's notes")
    reconcile_parser.add_argument("book_id")

    share_parser = subparsers.add_parser("share", help="Publish a note to the feed")
    share_parser.add_argument("note_id")
    share_parser.add_argument("text")

    unshare_parser = subparsers.add_parser("unshare", help="Remove a post from the feed")
    unshare_parser.add_argument("note_id")

    subparsers.add_parser("feed", help="Show shared notes")

    like_parser = subparsers.add_parser("like", help="Like or unlike a post")
    like_parser.add_argument("note_id")

    comment_parser = subparsers.add_parser("comment", help="Comment on a post")
    comment_parser.add_argument("note_id")
    comment_parser.add_argument("text")

    comments_parser = subparsers.add_parser("comments", help="Show comments on a post")
    comments_parser.add_argument("note_id")

    insights_parser = subparsers.add_parser("insights", help="All notes across the library")
    insights_parser.add_argument("--query", default="", help="Filter by text, title or author")

    return parser


def main():
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    config = Config()
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    try:
        if args.command == "init-db":
            code = init_db(args, config)
        elif args.command == "stats":
            code = show_stats(args, config)
        elif args.command == "search" and not args.use_async:
            code = search_books_sync(args, config)
        elif args.command in ("search", "add"):
            code = asyncio.run(search_books_async(args, config))
        elif args.command == "purchase":
            code = show_purchase_options(args, config)
        else:
            code = asyncio.run(run_store_command(args, config))

    except KeyboardInterrupt:
        logger.info("\n⚠️  Interrupted by user")
        sys.exit(0)
    except ShelfError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
