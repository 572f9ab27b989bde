"""Search-as-you-type against the external book API with catalog dedup."""
import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from readshelf.dedup import DedupIndex
from readshelf.errors import RemoteFetchError, ValidationError
from readshelf.models import SearchCandidate

logger = logging.getLogger(__name__)

SEARCH_DEBOUNCE_DELAY = 0.3
SEARCH_PAGE_SIZE = 20
MIN_QUERY_LENGTH = 2


@dataclass
class SearchResult:
    candidate: SearchCandidate
    exists: bool = False


@dataclass
class SearchState:
    """What the search screen renders."""
    query: str = ""
    results: List[SearchResult] = field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


class DebouncedSearchController:
    """
    Rate-limits searches while the user types.

    Each keystroke cancels the pending timer and arms a new one; only the
    last query in a quiet window runs. Every executed search takes a new
    request token, and a response is applied only while its token is
    still the latest, so a slow stale response can never overwrite newer
    results.
    """

    def __init__(
        self,
        search_client,
        store,
        coordinator=None,
        delay: float = SEARCH_DEBOUNCE_DELAY,
        page_size: int = SEARCH_PAGE_SIZE,
        min_length: int = MIN_QUERY_LENGTH,
        on_update: Optional[Callable[[SearchState], None]] = None
    ):
        """
        Args:
            search_client: Object with ``async search(query, max_results)``
            store: Awaitable row store holding the catalog
            coordinator: OptimisticMutationCoordinator used by ``add``
            delay: Quiet window in seconds
            page_size: Maximum candidates per search
            min_length: Shorter queries clear results without a request
            on_update: Called with the state after every visible change
        """
        self.search_client = search_client
        self.store = store
        self.coordinator = coordinator
        self.delay = delay
        self.page_size = page_size
        self.min_length = min_length
        self.on_update = on_update

        self.state = SearchState()
        self.index = DedupIndex()
        self._request_token = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None
        # Last completed search, reused when the same query runs again
        self._completed_query: Optional[str] = None
        self._completed_candidates: List[SearchCandidate] = []

    def _notify(self) -> None:
        if self.on_update is not None:
            self.on_update(self.state)

    def _cancel_timer(self) -> None:
        # Capture and clear before cancelling
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()

    def on_query_change(self, text: str) -> None:
        """Schedule a search for text after the quiet window."""
        self._cancel_timer()
        self.state.query = text
        query = text.strip()

        if len(query) < self.min_length:
            # Invalidate anything in flight as well
            self._request_token += 1
            self.state.results = []
            self.state.loading = False
            self.state.error = None
            self._notify()
            return

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._debounced_search, query)

    def _debounced_search(self, query: str) -> None:
        self._timer = None
        self._request_token += 1
        self._task = asyncio.ensure_future(self._run(query, self._request_token))

    async def search_now(self, text: str) -> SearchState:
        """Run a search immediately, bypassing the quiet window."""
        self._cancel_timer()
        self.state.query = text
        query = text.strip()
        self._request_token += 1
        if len(query) < self.min_length:
            self.state.results = []
            self.state.error = None
            self._notify()
            return self.state
        await self._run(query, self._request_token)
        return self.state

    async def wait_idle(self) -> None:
        """Wait until no timer is armed and the last search has finished."""
        while self._timer is not None or (self._task is not None and not self._task.done()):
            if self._task is not None and not self._task.done():
                await asyncio.wait([self._task])
            else:
                await asyncio.sleep(self.delay / 2 or 0.001)

    async def _run(self, query: str, token: int) -> None:
        if query == self._completed_query:
            logger.debug(f"Reusing results for {query!r}")
            self._apply(query, self._completed_candidates)
            return

        self.state.loading = True
        self.state.error = None
        self._notify()
        try:
            candidates = await self.search_client.search(query, max_results=self.page_size)
            if token != self._request_token:
                logger.debug(f"Discarding stale search results for {query!r}")
                return
            rows = await self.store.select("books", columns=["title", "author"])
        except RemoteFetchError as e:
            if token == self._request_token:
                logger.warning(f"Search failed for {query!r}: {e}")
                # Previous results stay on screen
                self.state.loading = False
                self.state.error = "Failed to search books"
                self._notify()
            return

        if token != self._request_token:
            logger.debug(f"Discarding stale catalog snapshot for {query!r}")
            return
        self.index = DedupIndex.from_rows(rows)
        self._completed_query = query
        self._completed_candidates = candidates[:self.page_size]
        self._apply(query, self._completed_candidates)

    def _apply(self, query: str, candidates: List[SearchCandidate]) -> None:
        self.state.results = [
            SearchResult(candidate, self.index.contains(candidate.key))
            for candidate in candidates
        ]
        self.state.loading = False
        self.state.error = None
        logger.info(f"Search {query!r}: {len(candidates)} result(s)")
        self._notify()

    def refresh_exists(self) -> None:
        """Recompute per-result existence from the current index."""
        for result in self.state.results:
            result.exists = self.index.contains(result.candidate.key)
        self._notify()

    async def add(self, candidate: SearchCandidate):
        """
        Add a candidate to the catalog through the mutation coordinator.

        The result flips to ``exists`` immediately and back again if the
        insert fails.
        """
        if self.coordinator is None:
            raise ValidationError("Adding books is not available here")
        pending = self.coordinator.add_to_catalog(candidate, self.index)
        self.refresh_exists()
        outcome = await pending
        if not outcome.ok:
            self.refresh_exists()
            if not isinstance(outcome.error, ValidationError):
                self.state.error = outcome.message
                self._notify()
        return outcome

    def reset(self) -> None:
        """Forget the session: pending timer, cached results and index."""
        self._cancel_timer()
        self._request_token += 1
        self._completed_query = None
        self._completed_candidates = []
        self.index = DedupIndex()
        self.state = SearchState()
        self._notify()
