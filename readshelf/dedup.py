"""Membership index of canonical keys already present in the catalog."""
import logging
from typing import Iterable, Dict, Any, Set

from readshelf.models import CanonicalKey
from readshelf.normalize import normalize

logger = logging.getLogger(__name__)


class DedupIndex:
    """
    Set of CanonicalKeys known to be in the catalog.
    
    Rebuilt wholesale from each catalog fetch; a successful local add
    inserts its key directly so the current search session reflects it
    without a re-fetch.
    """
    
    def __init__(self, keys: Iterable[CanonicalKey] = ()):
        self._keys: Set[CanonicalKey] = set(keys)
    
    @classmethod
    def from_rows(cls, rows: Iterable[Dict[str, Any]]) -> "DedupIndex":
        """Build from catalog rows carrying title and author columns."""
        index = cls(normalize(row.get("title"), row.get("author")) for row in rows)
        logger.debug(f"Dedup index rebuilt with {len(index)} keys")
        return index
    
    def contains(self, key: CanonicalKey) -> bool:
        return key in self._keys
    
    __contains__ = contains
    
    def add(self, key: CanonicalKey) -> None:
        self._keys.add(key)
    
    def discard(self, key: CanonicalKey) -> None:
        self._keys.discard(key)
    
    def __len__(self) -> int:
        return len(self._keys)
