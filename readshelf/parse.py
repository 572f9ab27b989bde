"""Parse and normalize Google Books API responses."""
import logging
from numbers import Number
from typing import Dict, Any, List, Optional

from readshelf.models import SearchCandidate, IndustryIdentifier

logger = logging.getLogger(__name__)

FALLBACK_COVER_URL = "https://images.unsplash.com/photo-1543002588-bfa74002ed7e?w=400"


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _number(value: Any) -> Optional[Number]:
    if isinstance(value, bool) or not isinstance(value, Number):
        return None
    return value


def cover_url(image_links: Optional[Dict[str, Any]]) -> str:
    """Thumbnail upgraded to https, or a placeholder cover."""
    if not isinstance(image_links, dict):
        return FALLBACK_COVER_URL
    thumbnail = _text(image_links.get("thumbnail"))
    if not thumbnail:
        return FALLBACK_COVER_URL
    return thumbnail.replace("http:", "https:", 1)


def parse_identifiers(entries: Any) -> List[IndustryIdentifier]:
    """ISBN and other identifiers; entries that aren't type/identifier objects are dropped."""
    if not isinstance(entries, list):
        return []
    return [
        IndustryIdentifier(_text(entry.get("type")) or "", entry["identifier"])
        for entry in entries
        if isinstance(entry, dict) and _text(entry.get("identifier"))
    ]


def parse_candidate(item: Dict[str, Any]) -> Optional[SearchCandidate]:
    """
    Parse a single volume from the Google Books API.
    
    Args:
        item: Single item from the API response
        
    Returns:
        SearchCandidate, or None if the item has no id or is not shaped
        like a volume (non-object volumeInfo, non-string title)
    """
    external_id = _text(item.get("id"))
    if not external_id:
        return None
    
    volume_info = item.get("volumeInfo") or {}
    if not isinstance(volume_info, dict):
        logger.warning(f"Skipping volume {external_id}: volumeInfo is not an object")
        return None
    
    title = volume_info.get("title", "Unknown Title")
    if not isinstance(title, str):
        logger.warning(f"Skipping volume {external_id}: title is not a string")
        return None
    
    authors = volume_info.get("authors") or []
    if not isinstance(authors, list):
        authors = []
    
    ratings_count = _number(volume_info.get("ratingsCount"))
    
    return SearchCandidate(
        external_id=external_id,
        title=title,
        authors=[author for author in authors if isinstance(author, str)],
        description=_text(volume_info.get("description")),
        cover_url=cover_url(volume_info.get("imageLinks")),
        identifiers=parse_identifiers(volume_info.get("industryIdentifiers")),
        average_rating=_number(volume_info.get("averageRating")),
        ratings_count=int(ratings_count) if ratings_count is not None else None,
        published_date=_text(volume_info.get("publishedDate")),
    )


def parse_search_response(response_json: Dict[str, Any]) -> List[SearchCandidate]:
    """
    Parse a full search response.
    
    Args:
        response_json: Complete API response JSON
        
    Returns:
        List of candidates (empty if no items found)
        
    Raises:
        ValueError: if the payload is not shaped like a volumes response
    """
    if not isinstance(response_json, dict):
        raise ValueError(f"Unexpected response type: {type(response_json).__name__}")
    
    items = response_json.get("items") or []
    if not isinstance(items, list):
        raise ValueError("'items' is not a list")
    
    candidates = []
    for item in items:
        if not isinstance(item, dict):
            logger.warning("Skipping malformed search item")
            continue
        candidate = parse_candidate(item)
        if candidate:
            candidates.append(candidate)
    
    return deduplicate_candidates(candidates)


def deduplicate_candidates(candidates: List[SearchCandidate]) -> List[SearchCandidate]:
    """
    Remove duplicate volumes by external id, keeping the first.
    
    Args:
        candidates: List of candidates
        
    Returns:
        Deduplicated list, original order preserved
    """
    seen_ids = set()
    unique = []
    
    for candidate in candidates:
        if candidate.external_id not in seen_ids:
            seen_ids.add(candidate.external_id)
            unique.append(candidate)
    
    return unique
