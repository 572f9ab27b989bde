"""Tests for date sections."""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from readshelf.bucketing import bucket, bucket_label


@dataclass
class Entry:
    name: str
    created_at: datetime


def at(*args):
    return datetime(*args, tzinfo=timezone.utc)


NOW = at(2026, 10, 25, 23, 30)


def test_now_is_today():
    """Test that an item timestamped now is in Today."""
    assert bucket_label(NOW, NOW) == "Today"


def test_twenty_five_hours_ago_on_previous_day_is_yesterday():
    """Test that 25 hours back on the previous calendar day is Yesterday."""
    assert bucket_label(NOW - timedelta(hours=25), NOW) == "Yesterday"


def test_calendar_day_not_elapsed_hours():
    """Test that buckets follow calendar days rather than elapsed hours."""
    early = at(2026, 10, 25, 0, 30)
    assert bucket_label(early - timedelta(hours=1), early) == "Yesterday"
    assert bucket_label(early - timedelta(hours=25), early) == "Previous 7 days"


def test_previous_seven_days_boundary():
    """Test the edges of the Previous 7 Days bucket."""
    assert bucket_label(at(2026, 10, 18, 8, 0), NOW) == "Previous 7 days"
    assert bucket_label(at(2026, 10, 17, 8, 0), NOW) == "This Month"


def test_older_in_same_month_is_this_month():
    """Test that older items in the current month land in This Month."""
    assert bucket_label(at(2026, 10, 2), NOW) == "This Month"


def test_older_months_use_month_and_year():
    """Test month-and-year labels for older items."""
    assert bucket_label(at(2025, 8, 14), NOW) == "August 2025"
    assert bucket_label(at(2026, 9, 30), NOW) == "September 2026"


def test_timestamps_compared_in_nows_timezone():
    """Test that item timestamps are compared in the timezone of now."""
    eastern = timezone(timedelta(hours=-5))
    now = datetime(2026, 10, 25, 10, 0, tzinfo=eastern)
    # 02:00 UTC on the 25th is still the 24th in UTC-5
    assert bucket_label(at(2026, 10, 25, 2, 0), now) == "Yesterday"


def test_sections_are_ordered_and_stable():
    """Test section order and stable item order within sections."""
    entries = [
        Entry("old", at(2025, 8, 14)),
        Entry("today-1", NOW - timedelta(minutes=5)),
        Entry("month", at(2026, 10, 3)),
        Entry("sept", at(2026, 9, 20)),
        Entry("yesterday", NOW - timedelta(hours=25)),
        Entry("today-2", NOW - timedelta(hours=2)),
        Entry("week", at(2026, 10, 21)),
        Entry("older", at(2025, 8, 2)),
    ]

    sections = bucket(entries, NOW)

    assert [label for label, _ in sections] == [
        "Today", "Yesterday", "Previous 7 days", "This Month", "September 2026", "August 2025",
    ]
    grouped = {label: [e.name for e in items] for label, items in sections}
    assert grouped["Today"] == ["today-1", "today-2"]
    assert grouped["August 2025"] == ["old", "older"]


def test_empty_sections_are_omitted():
    """Test that only non-empty sections are returned."""
    sections = bucket([Entry("a", at(2024, 1, 5))], NOW)
    assert sections == [("January 2024", [Entry("a", at(2024, 1, 5))])]
    assert bucket([], NOW) == []


def test_custom_timestamp_key():
    """Test bucketing on a timestamp other than created_at."""
    rows = [{"at": NOW}, {"at": at(2026, 10, 24, 9, 0)}]
    sections = bucket(rows, NOW, key=lambda row: row["at"])
    assert [label for label, _ in sections] == ["Today", "Yesterday"]
