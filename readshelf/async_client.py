"""Async HTTP client used by the interactive search controller."""
import asyncio
import httpx
from typing import List, Optional
import logging

from readshelf.client import BASE_URL, build_search_params
from readshelf.errors import RemoteFetchError
from readshelf.models import SearchCandidate
from readshelf.parse import parse_search_response

logger = logging.getLogger(__name__)


class AsyncGoogleBooksClient:
    """Async client for book searches."""
    
    BASE_URL = BASE_URL
    
    def __init__(
        self,
        api_key: Optional[str] = None,
        timeout: int = 10,
        max_concurrent: int = 5,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize async client.
        
        Args:
            api_key: Optional API key
            timeout: Request timeout
            max_concurrent: Maximum concurrent requests
            client: Pre-built httpx client (tests pass one with a mock transport)
        """
        self.api_key = api_key
        self.timeout = timeout
        self.semaphore = asyncio.Semaphore(max_concurrent)
        self.client = client or httpx.AsyncClient(timeout=timeout)
    
    async def search(self, query: str, max_results: int = 20) -> List[SearchCandidate]:
        """
        Search for books asynchronously.
        
        Non-2xx and malformed responses are one opaque failure.
        
        Raises:
            RemoteFetchError: when the request or its payload is unusable
        """
        params = build_search_params(query, max_results, self.api_key)
        
        async with self.semaphore:
            try:
                logger.info(f"Async request: {query}")
                response = await self.client.get(self.BASE_URL, params=params)
                response.raise_for_status()
                candidates = parse_search_response(response.json())
            except (httpx.HTTPError, ValueError) as e:
                logger.warning(f"Async request failed for {query!r}: {e}")
                raise RemoteFetchError("Failed to search books") from e
        
        return candidates[:max_results]
    
    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
    
    async def __aenter__(self):
        """Async context manager entry."""
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
