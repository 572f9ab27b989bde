"""In-memory view state and the loaders that fill it on view-mount."""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from readshelf.errors import RemoteFetchError
from readshelf.models import (
    Actor, CatalogItem, Comment, Like, Note, STATUS_IN_PROGRESS, STATUSES,
)

logger = logging.getLogger(__name__)

# Display filter names that differ from the stored status
STATUS_ALIASES = {"Reading": STATUS_IN_PROGRESS}


@dataclass
class Library:
    status: str
    items: List[CatalogItem] = field(default_factory=list)
    
    def find(self, item_id: str) -> Optional[CatalogItem]:
        return next((item for item in self.items if item.id == item_id), None)


@dataclass
class BookDetail:
    item: CatalogItem
    notes: List[Note] = field(default_factory=list)


@dataclass
class Feed:
    """Shared notes plus the actor's like state for each of them."""
    notes: List[Note] = field(default_factory=list)
    # Locally displayed liked state
    liked: Set[str] = field(default_factory=set)
    # Remote like row id per note, known from the store
    like_ids: Dict[str, str] = field(default_factory=dict)
    
    def find(self, note_id: str) -> Optional[Note]:
        return next((note for note in self.notes if note.id == note_id), None)
    
    def is_liked(self, note_id: str) -> bool:
        return note_id in self.liked


@dataclass
class CommentThread:
    note: Note
    comments: List[Comment] = field(default_factory=list)


async def _fetch(store, message: str, table: str, **kwargs) -> List[dict]:
    try:
        return await store.select(table, **kwargs)
    except RemoteFetchError as e:
        logger.warning(f"{message}: {e}")
        raise RemoteFetchError(message) from e


async def _attach_books(store, notes: List[Note], message: str) -> List[Note]:
    rows = await _fetch(store, message, "books", columns=["id", "title", "author"])
    books = {str(row["id"]): row for row in rows}
    for note in notes:
        book = books.get(note.catalog_item_id)
        if book:
            note.book_title = book["title"]
            note.book_author = book["author"]
    return notes


async def load_library(store, status: str) -> Library:
    """Catalog items with the given status, most recently updated first."""
    stored = STATUS_ALIASES.get(status, status)
    if stored not in STATUSES:
        raise ValueError(f"Unknown status: {status}")
    rows = await _fetch(
        store, "Failed to load books", "books",
        filters={"status": stored}, order_by="updated_at", descending=True,
    )
    return Library(stored, [CatalogItem.from_row(row) for row in rows])


async def load_book(store, book_id: str) -> BookDetail:
    """One catalog item and its notes, newest first."""
    message = "Failed to load book details"
    rows = await _fetch(store, message, "books", filters={"id": book_id}, limit=1)
    if not rows:
        raise RemoteFetchError("Book not found")
    note_rows = await _fetch(
        store, message, "book_notes",
        filters={"book_id": book_id}, order_by="created_at", descending=True,
    )
    return BookDetail(CatalogItem.from_row(rows[0]), [Note.from_row(row) for row in note_rows])


async def load_feed(store, actor: Actor) -> Feed:
    """Published notes, latest publication first, with the actor's likes."""
    message = "Failed to load shared notes"
    rows = await _fetch(
        store, message, "book_notes",
        not_null=["shared_at"], order_by="shared_at", descending=True,
    )
    notes = await _attach_books(store, [Note.from_row(row) for row in rows], message)
    
    like_rows = await _fetch(store, message, "likes", filters={"actor_id": actor.id})
    likes = [Like.from_row(row) for row in like_rows]
    like_ids = {like.note_id: like.id for like in likes}
    return Feed(notes=notes, liked=set(like_ids), like_ids=like_ids)


async def load_comments(store, note_id: str) -> CommentThread:
    """A note and its comments, newest first."""
    message = "Failed to load comments"
    rows = await _fetch(store, message, "book_notes", filters={"id": note_id}, limit=1)
    if not rows:
        raise RemoteFetchError("Note not found")
    comment_rows = await _fetch(
        store, message, "comments",
        filters={"note_id": note_id}, order_by="created_at", descending=True,
    )
    note = (await _attach_books(store, [Note.from_row(rows[0])], message))[0]
    return CommentThread(note, [Comment.from_row(row) for row in comment_rows])


async def load_insights(store) -> List[Note]:
    """Every note across the catalog, newest first, with its book attached."""
    message = "Failed to load notes"
    rows = await _fetch(store, message, "book_notes", order_by="created_at", descending=True)
    return await _attach_books(store, [Note.from_row(row) for row in rows], message)
