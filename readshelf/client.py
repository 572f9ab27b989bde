"""Blocking HTTP client for the Google Books API."""
import time
import random
import requests
from typing import Optional, Dict, Any, List
import logging

from readshelf.errors import RemoteFetchError
from readshelf.models import SearchCandidate
from readshelf.parse import parse_search_response

logger = logging.getLogger(__name__)

BASE_URL = "https://www.googleapis.com/books/v1/volumes"
MAX_PAGE_SIZE = 40  # API limit
SEARCH_FIELDS = (
    "items(id,volumeInfo(title,authors,publishedDate,description,imageLinks,"
    "industryIdentifiers,averageRating,ratingsCount))"
)


def build_search_params(query: str, max_results: int, api_key: Optional[str]) -> Dict[str, Any]:
    """Query parameters shared by the blocking and async clients."""
    params = {
        "q": query,
        "maxResults": min(max_results, MAX_PAGE_SIZE),
        "fields": SEARCH_FIELDS,
    }
    if api_key:
        params["key"] = api_key
    return params


class GoogleBooksClient:
    """Client for Google Books API with timeouts and opt-in retries."""
    
    BASE_URL = BASE_URL
    
    def __init__(
        self, 
        api_key: Optional[str] = None,
        timeout: int = 10,
        max_retries: int = 1,
        base_backoff: float = 1.0
    ):
        """
        Initialize Google Books API client.
        
        Args:
            api_key: Optional API key (increases rate limits)
            timeout: Request timeout in seconds
            max_retries: Total attempts per request (1 means no retry)
            base_backoff: Base delay for exponential backoff
        """
        self.api_key = api_key
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_backoff = base_backoff
        
        # Create session for connection pooling
        self.session = requests.Session()
    
    def search(self, query: str, max_results: int = 20) -> List[SearchCandidate]:
        """
        Search for books.
        
        Args:
            query: Search query string
            max_results: Maximum results to return (1-40)
            
        Returns:
            Parsed candidates
            
        Raises:
            RemoteFetchError: on any transport, status or payload failure
        """
        params = build_search_params(query, max_results, self.api_key)
        payload = self._make_request_with_retry(self.BASE_URL, params)
        try:
            return parse_search_response(payload)[:max_results]
        except ValueError as e:
            logger.error(f"Malformed search response: {e}")
            raise RemoteFetchError("Failed to search books") from e
    
    def _make_request_with_retry(self, url: str, params: Dict[str, Any]) -> Dict[str, Any]:
        """
        Make HTTP request, retrying transient failures while attempts remain.
        
        Args:
            url: Request URL
            params: Query parameters
            
        Returns:
            Response JSON
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Request attempt {attempt + 1}/{self.max_retries}: {url}")
                
                response = self.session.get(
                    url,
                    params=params,
                    timeout=self.timeout
                )
                
                if response.status_code == 200:
                    logger.info(f"Success: {response.status_code}")
                    return response.json()
                
                if response.status_code == 429 or response.status_code >= 500:
                    # Rate limited or server error - retryable
                    logger.warning(f"Status {response.status_code} on attempt {attempt + 1}")
                    if attempt < self.max_retries - 1:
                        self._backoff(attempt)
                        continue
                else:
                    # Client error - don't retry
                    logger.error(f"Client error ({response.status_code}): {response.text}")
                    break
            
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as e:
                logger.warning(f"Transport error on attempt {attempt + 1}: {e}")
                if attempt < self.max_retries - 1:
                    self._backoff(attempt)
                    continue
            
            except (requests.exceptions.RequestException, ValueError) as e:
                logger.error(f"Unexpected error: {e}")
                break
        
        logger.error(f"Search request failed after {self.max_retries} attempt(s)")
        raise RemoteFetchError("Failed to search books")
    
    def _backoff(self, attempt: int):
        """
        Sleep with exponential backoff and jitter.
        
        Args:
            attempt: Current attempt number (0-indexed)
        """
        delay = self.base_backoff * (2 ** attempt)
        jitter = random.uniform(0, delay)
        total_delay = delay + jitter
        
        logger.info(f"Backing off for {total_delay:.2f} seconds")
        time.sleep(total_delay)
    
    def close(self):
        """Close the session."""
        self.session.close()
    
    def __enter__(self):
        """Context manager entry."""
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
