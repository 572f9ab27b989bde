"""Data models for catalog items, notes and the social layer."""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, List, Dict, Any

STATUS_TO_READ = "To Read"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"
STATUS_ON_HOLD = "On Hold"
STATUSES = (STATUS_TO_READ, STATUS_IN_PROGRESS, STATUS_COMPLETED, STATUS_ON_HOLD)

DEFAULT_SOURCE = "Physical Book"
UNKNOWN_AUTHOR = "Unknown Author"
MAX_RATING = 5


def parse_timestamp(value) -> Optional[datetime]:
    """Accept a datetime or an ISO-8601 string (as returned by the store)."""
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


@dataclass(frozen=True)
class CanonicalKey:
    """Normalized (title, author) pair used for cross-source matching."""
    normalized_title: str
    normalized_author: str


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf likes and comments are written."""
    id: str
    display_name: str


@dataclass
class CatalogItem:
    """A book in the user's library."""
    id: str
    title: str
    author: str
    cover_url: Optional[str] = None
    status: str = STATUS_TO_READ
    rating: int = 0
    ideas_count: int = 0
    source: str = DEFAULT_SOURCE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "CatalogItem":
        return cls(
            id=str(row["id"]),
            title=row["title"],
            author=row["author"],
            cover_url=row.get("cover_url"),
            status=row.get("status") or STATUS_TO_READ,
            rating=int(row.get("rating") or 0),
            ideas_count=int(row.get("ideas_count") or 0),
            source=row.get("source") or DEFAULT_SOURCE,
            created_at=parse_timestamp(row.get("created_at")),
            updated_at=parse_timestamp(row.get("updated_at")),
        )
    
    @property
    def key(self) -> CanonicalKey:
        from readshelf.normalize import normalize
        return normalize(self.title, self.author)


@dataclass
class Note:
    """A note attached to a catalog item; published when shared_at is set."""
    id: str
    catalog_item_id: str
    content: str
    created_at: Optional[datetime] = None
    shared_at: Optional[datetime] = None
    likes_count: int = 0
    comments_count: int = 0
    # Owning book, attached by the feed and insights loaders
    book_title: Optional[str] = None
    book_author: Optional[str] = None
    
    @property
    def is_shared(self) -> bool:
        return self.shared_at is not None
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Note":
        return cls(
            id=str(row["id"]),
            catalog_item_id=str(row["book_id"]),
            content=row["content"],
            created_at=parse_timestamp(row.get("created_at")),
            shared_at=parse_timestamp(row.get("shared_at")),
            likes_count=int(row.get("likes_count") or 0),
            comments_count=int(row.get("comments_count") or 0),
        )


@dataclass
class Comment:
    """Append-only comment on a note."""
    id: str
    note_id: str
    content: str
    author_name: str
    created_at: Optional[datetime] = None
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Comment":
        return cls(
            id=str(row["id"]),
            note_id=str(row["note_id"]),
            content=row["content"],
            author_name=row.get("user_name") or "",
            created_at=parse_timestamp(row.get("created_at")),
        )


@dataclass
class Like:
    """Presence of a like row means the actor liked the note."""
    id: str
    note_id: str
    created_at: Optional[datetime] = None
    actor_id: Optional[str] = None
    
    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Like":
        return cls(
            id=str(row["id"]),
            note_id=str(row["note_id"]),
            created_at=parse_timestamp(row.get("created_at")),
            actor_id=row.get("actor_id"),
        )


@dataclass(frozen=True)
class IndustryIdentifier:
    type: str
    identifier: str


@dataclass
class SearchCandidate:
    """A book returned by the external search API (never persisted)."""
    external_id: str
    title: str
    authors: List[str] = field(default_factory=list)
    description: Optional[str] = None
    cover_url: Optional[str] = None
    identifiers: List[IndustryIdentifier] = field(default_factory=list)
    average_rating: Optional[float] = None
    ratings_count: Optional[int] = None
    published_date: Optional[str] = None
    
    @property
    def primary_author(self) -> str:
        """First listed author, as stored on the catalog item."""
        return self.authors[0] if self.authors else UNKNOWN_AUTHOR
    
    @property
    def authors_str(self) -> str:
        """Format authors as comma-separated string."""
        return ", ".join(self.authors) if self.authors else UNKNOWN_AUTHOR
    
    @property
    def key(self) -> CanonicalKey:
        from readshelf.normalize import normalize
        return normalize(self.title, self.primary_author)


@dataclass(frozen=True)
class PurchaseOption:
    """Where a book can be bought or borrowed."""
    retailer: str
    url: str
    kind: str
