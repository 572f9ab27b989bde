"""
Optimistic mutations against the catalog/social store.

Every user action is applied to the in-memory view first, then written
to the store. A failed write puts the view back the way it was and
reports a single error; a successful insert swaps the placeholder for
the server-assigned row.

Public mutation methods run their local change synchronously and return
an ``asyncio.Task`` resolving to a ``MutationOutcome``. They must be
called from a running event loop.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from readshelf.dedup import DedupIndex
from readshelf.errors import (
    ConsistencyGap, RemoteFetchError, RemoteWriteError, ShelfError, ValidationError,
)
from readshelf.models import (
    Actor, CatalogItem, Comment, MAX_RATING, Note, STATUSES, STATUS_TO_READ,
    DEFAULT_SOURCE, SearchCandidate,
)
from readshelf.views import BookDetail, CommentThread, Feed

logger = logging.getLogger(__name__)

PENDING_PREFIX = "pending-"


@dataclass
class MutationOutcome:
    """Result of one mutation once its remote write has settled."""
    ok: bool
    error: Optional[ShelfError] = None
    value: Any = None
    # Declined confirmation, or dropped because an earlier toggle failed
    cancelled: bool = False
    
    @property
    def message(self) -> Optional[str]:
        return self.error.message if self.error else None


def _pending_id() -> str:
    return f"{PENDING_PREFIX}{uuid.uuid4().hex}"


def _remove_by_id(items: list, item_id: str):
    """Remove an element in place; returns (index, element) or (None, None)."""
    for index, element in enumerate(items):
        if element.id == item_id:
            del items[index]
            return index, element
    return None, None


def _reinsert(items: list, index: int, element) -> None:
    items.insert(min(index, len(items)), element)


def _splice(items: list, placeholder_id: str, record) -> None:
    """Replace the placeholder with the stored record, keeping its position."""
    for index, element in enumerate(items):
        if element.id == placeholder_id:
            items[index] = record
            return
    items.insert(0, record)


def candidate_rating(candidate: SearchCandidate) -> int:
    """Starting rating for a newly added book: the rounded public average."""
    if candidate.average_rating is None:
        return 0
    return max(0, min(MAX_RATING, int(round(candidate.average_rating))))


class OptimisticMutationCoordinator:
    """Applies mutations locally, commits them remotely, reverts on failure."""
    
    def __init__(
        self,
        store,
        actor: Actor,
        on_error: Optional[Callable[[str], None]] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Args:
            store: Awaitable row store (select/insert/update/delete)
            actor: User on whose behalf likes and comments are written
            on_error: Called with a user-facing message whenever a mutation fails
            clock: Returns the current time (UTC by default)
        """
        self.store = store
        self.actor = actor
        self.on_error = on_error
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.last_error: Optional[str] = None
        self._pending: Set[asyncio.Task] = set()
        self._like_tails: Dict[str, asyncio.Task] = {}
        self._like_epochs: Dict[str, int] = {}
        self._note_tails: Dict[str, asyncio.Task] = {}
    
    # -- plumbing ---------------------------------------------------------
    
    def _launch(self, coro: Awaitable[MutationOutcome]) -> "asyncio.Task[MutationOutcome]":
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task
    
    def _settled(self, outcome: MutationOutcome) -> "asyncio.Future[MutationOutcome]":
        future = asyncio.get_running_loop().create_future()
        future.set_result(outcome)
        return future
    
    def _report(self, error: ShelfError) -> None:
        self.last_error = error.message
        if self.on_error is not None:
            self.on_error(error.message)
    
    def _reject(self, error: ShelfError) -> "asyncio.Future[MutationOutcome]":
        logger.info(f"Rejected: {error.message}")
        self._report(error)
        return self._settled(MutationOutcome(False, error))
    
    def _failed(self, error: ShelfError, cause: Exception = None) -> MutationOutcome:
        logger.warning(f"{error.message}: {cause}")
        self._report(error)
        return MutationOutcome(False, error)
    
    async def _commit(
        self,
        failure: str,
        write: Callable[[], Awaitable[Any]],
        revert: Callable[[], None],
        on_success: Optional[Callable[[Any], Any]] = None
    ) -> MutationOutcome:
        try:
            result = await write()
        except ShelfError as e:
            revert()
            return self._failed(RemoteWriteError(failure), e)
        if on_success is not None:
            result = on_success(result)
        return MutationOutcome(True, value=result)
    
    async def drain(self) -> None:
        """Wait for every outstanding remote write to settle."""
        while self._pending:
            await asyncio.wait(list(self._pending))
    
    # -- catalog ----------------------------------------------------------
    
    def add_to_catalog(self, candidate: SearchCandidate, index: DedupIndex):
        """Add a search result to the library and mark it present in the index."""
        key = candidate.key
        if index.contains(key):
            return self._reject(ValidationError("This book is already in your library"))
        
        index.add(key)
        values = {
            "title": candidate.title,
            "author": candidate.primary_author,
            "cover_url": candidate.cover_url,
            "status": STATUS_TO_READ,
            "rating": candidate_rating(candidate),
            "source": DEFAULT_SOURCE,
        }
        return self._launch(self._commit(
            "Failed to add book",
            lambda: self.store.insert("books", values),
            lambda: index.discard(key),
            CatalogItem.from_row,
        ))
    
    def set_rating(self, item: CatalogItem, star: int):
        """Pressing the current star clears the rating; any other star sets it."""
        if not isinstance(star, int) or not 0 <= star <= MAX_RATING:
            return self._reject(ValidationError(f"Rating must be between 0 and {MAX_RATING}"))
        
        previous = item.rating
        rating = 0 if star == previous else star
        item.rating = rating
        
        def revert():
            item.rating = previous
        
        return self._launch(self._commit(
            "Failed to update rating",
            lambda: self.store.update("books", item.id, {"rating": rating}),
            revert,
        ))
    
    def set_status(self, item: CatalogItem, status: str):
        if status not in STATUSES:
            return self._reject(ValidationError(f"Unknown status: {status}"))
        
        previous = item.status
        item.status = status
        
        def revert():
            item.status = previous
        
        return self._launch(self._commit(
            "Failed to update status",
            lambda: self.store.update("books", item.id, {"status": status}),
            revert,
        ))
    
    def delete_item(
        self,
        items: List[CatalogItem],
        item_id: str,
        confirm: Callable[[CatalogItem], bool]
    ):
        """
        Permanently delete a catalog item after the user confirms.
        
        Args:
            items: The displayed list the item is removed from
            item_id: Catalog item id
            confirm: Blocking prompt; returning False cancels with no changes
        """
        item = next((entry for entry in items if entry.id == item_id), None)
        if item is None:
            return self._reject(ValidationError("Book not found"))
        if not confirm(item):
            logger.info(f"Delete of {item_id} cancelled")
            return self._settled(MutationOutcome(False, cancelled=True))
        
        position, _ = _remove_by_id(items, item_id)
        return self._launch(self._commit(
            "Failed to delete book",
            lambda: self.store.delete("books", item_id),
            lambda: _reinsert(items, position, item),
        ))
    
    async def reconcile_ideas_count(self, item: CatalogItem) -> MutationOutcome:
        """
        Repair ideas_count from the note rows that actually exist.
        
        Returns an outcome whose value is the corrected count.
        """
        try:
            rows = await self.store.select("book_notes", columns=["id"], filters={"book_id": item.id})
            books = await self.store.select("books", columns=["ideas_count"], filters={"id": item.id}, limit=1)
        except ShelfError as e:
            return self._failed(RemoteFetchError("Failed to load notes"), e)
        if not books:
            return self._failed(RemoteFetchError("Book not found"))
        
        actual = len(rows)
        stored = int(books[0].get("ideas_count") or 0)
        if stored != actual:
            logger.info(f"Reconciling ideas_count for {item.id}: {stored} -> {actual}")
            try:
                await self.store.update("books", item.id, {"ideas_count": actual})
            except ShelfError as e:
                return self._failed(RemoteWriteError("Failed to repair note count"), e)
        item.ideas_count = actual
        return MutationOutcome(True, value=actual)
    
    # -- notes ------------------------------------------------------------
    
    def add_note(self, detail: BookDetail, content: str):
        """Insert a note and bump the owning item's ideas_count."""
        text = (content or "").strip()
        if not text:
            return self._reject(ValidationError("Note cannot be empty"))
        
        item = detail.item
        placeholder = Note(
            id=_pending_id(),
            catalog_item_id=item.id,
            content=text,
            created_at=self.clock(),
        )
        detail.notes.insert(0, placeholder)
        item.ideas_count += 1
        return self._queue_for_book(item.id, lambda: self._commit_note(detail, placeholder))
    
    def _queue_for_book(self, book_id: str, commit: Callable[[], Awaitable[MutationOutcome]]):
        """Run note commits for one book strictly one after another."""
        previous = self._note_tails.get(book_id)
        
        async def run() -> MutationOutcome:
            if previous is not None:
                await asyncio.wait([previous])
            return await commit()
        
        task = self._launch(run())
        self._note_tails[book_id] = task
        
        def _release(done: asyncio.Task) -> None:
            if self._note_tails.get(book_id) is done:
                del self._note_tails[book_id]
        
        task.add_done_callback(_release)
        return task
    
    async def _store_note_count(self, book_id: str) -> int:
        """Write the number of stored notes to the book row."""
        rows = await self.store.select("book_notes", columns=["id"], filters={"book_id": book_id})
        await self.store.update("books", book_id, {"ideas_count": len(rows)})
        return len(rows)
    
    async def _commit_note(self, detail: BookDetail, placeholder: Note) -> MutationOutcome:
        item = detail.item
        values = {"book_id": item.id, "content": placeholder.content}
        add_atomic = getattr(self.store, "add_note_atomic", None)
        
        try:
            if add_atomic is not None:
                note_row, _ = await add_atomic(values)
            else:
                note_row = await self.store.insert("book_notes", values)
        except ShelfError as e:
            _remove_by_id(detail.notes, placeholder.id)
            item.ideas_count = max(0, item.ideas_count - 1)
            return self._failed(RemoteWriteError("Failed to add note"), e)
        
        note = Note.from_row(note_row)
        _splice(detail.notes, placeholder.id, note)
        if add_atomic is not None:
            return MutationOutcome(True, value=note)
        
        try:
            count = await self._store_note_count(item.id)
        except ShelfError as e:
            # The note stays; the local counter follows what the store holds
            item.ideas_count = max(0, item.ideas_count - 1)
            outcome = self._failed(
                ConsistencyGap("Note saved, but the book's note count could not be updated"), e
            )
            return MutationOutcome(True, outcome.error, note)
        logger.debug(f"ideas_count for {item.id} stored as {count}")
        return MutationOutcome(True, value=note)
    
    def delete_note(self, detail: BookDetail, note_id: str):
        """Delete a note and decrement ideas_count, floored at zero."""
        position, note = _remove_by_id(detail.notes, note_id)
        if note is None:
            return self._reject(ValidationError("Note not found"))
        
        item = detail.item
        # Zero when the counter is already at its floor
        removed = 1 if item.ideas_count > 0 else 0
        item.ideas_count -= removed
        return self._queue_for_book(
            item.id, lambda: self._commit_note_delete(detail, note, position, removed)
        )
    
    async def _commit_note_delete(
        self, detail: BookDetail, note: Note, position: int, removed: int
    ) -> MutationOutcome:
        item = detail.item
        try:
            await self.store.delete("book_notes", note.id)
        except ShelfError as e:
            _reinsert(detail.notes, position, note)
            item.ideas_count += removed
            return self._failed(RemoteWriteError("Failed to delete note"), e)
        
        try:
            await self._store_note_count(item.id)
        except ShelfError as e:
            item.ideas_count += removed
            outcome = self._failed(
                ConsistencyGap("Note deleted, but the book's note count could not be updated"), e
            )
            return MutationOutcome(True, outcome.error)
        return MutationOutcome(True)
    
    def share(self, note: Note, content: str):
        """Publish a note to the shared feed with (possibly edited) content."""
        text = (content or "").strip()
        if not text:
            return self._reject(ValidationError("Post cannot be empty"))
        
        previous = (note.content, note.shared_at)
        shared_at = self.clock()
        note.content, note.shared_at = text, shared_at
        
        def revert():
            note.content, note.shared_at = previous
        
        return self._launch(self._commit(
            "Failed to share note",
            lambda: self.store.update("book_notes", note.id, {"content": text, "shared_at": shared_at}),
            revert,
        ))
    
    def unshare(self, feed: Feed, note_id: str):
        """Soft delete: drop the note from the feed, keep the note record."""
        position, note = _remove_by_id(feed.notes, note_id)
        if note is None:
            return self._reject(ValidationError("Post not found"))
        
        previous_shared_at = note.shared_at
        note.shared_at = None
        
        def revert():
            note.shared_at = previous_shared_at
            _reinsert(feed.notes, position, note)
        
        return self._launch(self._commit(
            "Failed to delete post",
            lambda: self.store.update("book_notes", note_id, {"shared_at": None}),
            revert,
        ))
    
    # -- social -----------------------------------------------------------
    
    def toggle_like(self, feed: Feed, note_id: str):
        """
        Flip the liked state and counter now; commit in per-note order.
        
        Commits for one note run strictly one after another. If one fails,
        the note returns to its state before that toggle and the toggles
        queued behind it are dropped.
        """
        note = feed.find(note_id)
        if note is None:
            return self._reject(ValidationError("Post not found"))
        
        was_liked = feed.is_liked(note_id)
        snapshot = (was_liked, note.likes_count)
        if was_liked:
            feed.liked.discard(note_id)
            note.likes_count = max(0, note.likes_count - 1)
        else:
            feed.liked.add(note_id)
            note.likes_count += 1
        
        epoch = self._like_epochs.get(note_id, 0)
        previous = self._like_tails.get(note_id)
        task = self._launch(self._commit_like(feed, note, not was_liked, snapshot, epoch, previous))
        self._like_tails[note_id] = task
        
        def _release(done: asyncio.Task) -> None:
            if self._like_tails.get(note_id) is done:
                del self._like_tails[note_id]
        
        task.add_done_callback(_release)
        return task
    
    async def _commit_like(
        self, feed: Feed, note: Note, like: bool, snapshot, epoch: int, previous: Optional[asyncio.Task]
    ) -> MutationOutcome:
        if previous is not None:
            await asyncio.wait([previous])
        if self._like_epochs.get(note.id, 0) != epoch:
            logger.debug(f"Dropping like toggle for {note.id} after an earlier failure")
            return MutationOutcome(False, cancelled=True)
        
        try:
            if like and note.id not in feed.like_ids:
                row = await self.store.insert("likes", {"note_id": note.id, "actor_id": self.actor.id})
                feed.like_ids[note.id] = str(row["id"])
            elif not like and note.id in feed.like_ids:
                await self.store.delete("likes", feed.like_ids[note.id])
                del feed.like_ids[note.id]
        except ShelfError as e:
            self._like_epochs[note.id] = epoch + 1
            was_liked, count = snapshot
            if was_liked:
                feed.liked.add(note.id)
            else:
                feed.liked.discard(note.id)
            note.likes_count = count
            return self._failed(RemoteWriteError("Failed to update like"), e)
        return MutationOutcome(True)
    
    def add_comment(self, thread: CommentThread, content: str):
        """Append a comment as the current actor."""
        text = (content or "").strip()
        if not text:
            return self._reject(ValidationError("Comment cannot be empty"))
        
        note = thread.note
        placeholder = Comment(
            id=_pending_id(),
            note_id=note.id,
            content=text,
            author_name=self.actor.display_name,
            created_at=self.clock(),
        )
        thread.comments.insert(0, placeholder)
        note.comments_count += 1
        
        def revert():
            _remove_by_id(thread.comments, placeholder.id)
            note.comments_count = max(0, note.comments_count - 1)
        
        def splice(row):
            comment = Comment.from_row(row)
            _splice(thread.comments, placeholder.id, comment)
            return comment
        
        values = {"note_id": note.id, "content": text, "user_name": self.actor.display_name}
        return self._launch(self._commit(
            "Failed to submit comment",
            lambda: self.store.insert("comments", values),
            revert,
            splice,
        ))
