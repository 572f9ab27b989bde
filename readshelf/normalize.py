"""Canonical matching keys for books coming from different sources."""
from typing import Optional

from readshelf.models import CanonicalKey


def normalize_text(value: Optional[str]) -> str:
    """Lower-case and strip surrounding whitespace."""
    return (value or "").strip().lower()


def normalize(title: Optional[str], author: Optional[str]) -> CanonicalKey:
    """
    Build the canonical key for a (title, author) pair.
    
    Two inputs that differ only in case or surrounding whitespace
    produce equal keys.
    """
    return CanonicalKey(normalize_text(title), normalize_text(author))
