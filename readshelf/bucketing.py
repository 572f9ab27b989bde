"""Group time-stamped records into display sections relative to now."""
from datetime import datetime
from operator import attrgetter
from typing import Callable, Dict, List, Sequence, Tuple, TypeVar

T = TypeVar("T")

TODAY = "Today"
YESTERDAY = "Yesterday"
PREVIOUS_7_DAYS = "Previous 7 days"
THIS_MONTH = "This Month"
FIXED_BUCKETS = (TODAY, YESTERDAY, PREVIOUS_7_DAYS, THIS_MONTH)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _local(timestamp: datetime, now: datetime) -> datetime:
    """Express timestamp in now's timezone so calendar days line up."""
    if timestamp.tzinfo is not None and now.tzinfo is not None:
        return timestamp.astimezone(now.tzinfo)
    return timestamp


def calendar_days_between(timestamp: datetime, now: datetime) -> int:
    """Whole calendar days separating the two dates, ignoring time of day."""
    return abs((now.date() - _local(timestamp, now).date()).days)


def month_label(timestamp: datetime) -> str:
    return f"{MONTH_NAMES[timestamp.month - 1]} {timestamp.year}"


def bucket_label(timestamp: datetime, now: datetime) -> str:
    """First matching label: Today, Yesterday, Previous 7 days, This Month, else 'Month Year'."""
    timestamp = _local(timestamp, now)
    days = calendar_days_between(timestamp, now)
    if days == 0:
        return TODAY
    if days == 1:
        return YESTERDAY
    if days <= 7:
        return PREVIOUS_7_DAYS
    if (timestamp.year, timestamp.month) == (now.year, now.month):
        return THIS_MONTH
    return month_label(timestamp)


def bucket(
    items: Sequence[T],
    now: datetime,
    key: Callable[[T], datetime] = attrgetter("created_at"),
) -> List[Tuple[str, List[T]]]:
    """
    Group items into ordered, non-empty (label, items) sections.
    
    Items keep their input order inside each section. Sections follow
    Today, Yesterday, Previous 7 days, This Month, then month buckets
    newest first.
    """
    groups: Dict[str, List[T]] = {}
    month_order: Dict[str, Tuple[int, int]] = {}
    
    for item in items:
        timestamp = _local(key(item), now)
        label = bucket_label(timestamp, now)
        groups.setdefault(label, []).append(item)
        if label not in FIXED_BUCKETS:
            month_order[label] = (timestamp.year, timestamp.month)
    
    ordered = [label for label in FIXED_BUCKETS if label in groups]
    ordered += sorted(month_order, key=month_order.get, reverse=True)
    return [(label, groups[label]) for label in ordered]
