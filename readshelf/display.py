"""Small formatting helpers for lists of notes and comments."""
from datetime import datetime
from typing import Iterable, List

from readshelf.bucketing import calendar_days_between
from readshelf.models import Note

SHORT_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


def format_time_ago(then: datetime, now: datetime) -> str:
    """Compact age such as '5m', '3h', '2d', '1w', '4mo' or '2y'."""
    seconds = abs((now - then).total_seconds())
    minutes = int(seconds // 60)
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    
    if minutes < 60:
        return f"{minutes}m"
    if hours < 24:
        return f"{hours}h"
    if days < 7:
        return f"{days}d"
    if days // 7 < 4:
        return f"{days // 7}w"
    if days // 30 < 12:
        return f"{days // 30}mo"
    return f"{days // 365}y"


def format_relative_date(then: datetime, now: datetime) -> str:
    """'Today', 'Yesterday', 'N days ago' within a week, else 'Mon D, YYYY'."""
    days = calendar_days_between(then, now)
    if days == 0:
        return "Today"
    if days == 1:
        return "Yesterday"
    if days <= 7:
        return f"{days} days ago"
    return f"{SHORT_MONTHS[then.month - 1]} {then.day}, {then.year}"


def format_count(count: int) -> str:
    if count < 1000:
        return str(count)
    if count < 1_000_000:
        return f"{count / 1000:.1f}K"
    return f"{count / 1_000_000:.1f}M"


def filter_notes(notes: Iterable[Note], query: str) -> List[Note]:
    """Case-insensitive substring match over content, book title and author."""
    needle = (query or "").lower()
    if not needle:
        return list(notes)
    return [
        note for note in notes
        if needle in note.content.lower()
        or needle in (note.book_title or "").lower()
        or needle in (note.book_author or "").lower()
    ]
