from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable, Dict, Optional, Protocol, Tuple

from bookclub_catalog.core.errors import DetailNotCached
from bookclub_catalog.core.genre import GenreClassifier
from bookclub_catalog.core.lenient_json import decode_catalog_items
from bookclub_catalog.core.models import BookDetail, BookSummary, CacheStatsSnapshot, RawCatalogItem, SearchRequest
from bookclub_catalog.core.normalize import normalize_isbn
from bookclub_catalog.core.stats_tracker import StatsTracker
from bookclub_catalog.core.ttl_store import TTLStore

logger = logging.getLogger(__name__)

Page = Tuple[BookSummary, ...]
PageKey = Tuple[str, int]

DEFAULT_PAGE_TTL_S = 600.0
DEFAULT_DETAIL_TTL_S = 86400.0
DEFAULT_PAGE_MAX_ENTRIES = 512
DEFAULT_DETAIL_MAX_ENTRIES = 10000


class PageFetcher(Protocol):
    def fetch_page(self, query_text: str, page: int, page_size: int) -> str:
        ...


def build_detail(item: RawCatalogItem, classifier: GenreClassifier) -> BookDetail:
    return BookDetail(
        title=item.title,
        author=item.author,
        isbn=item.resolved_isbn,
        cover_url=item.cover_url,
        description=item.description,
        genre=classifier.classify(item.category_text),
        publisher=item.publisher,
        published_date=item.published_date,
    )


class CacheStore:
    """
    Read-through cache over the catalog client.

    Two entry classes:
      - pages, keyed by (query_text, page): ordered BookSummary tuples
      - details, keyed by ISBN: BookDetail with is_favorite=False

    Filling a page also fills the details of every book on it. Failures are never cached.
    At most one upstream fetch is in flight per page key; concurrent missers wait on the
    first one and share its result (or its exception).
    """

    def __init__(
        self,
        client: PageFetcher,
        *,
        classifier: Optional[GenreClassifier] = None,
        page_ttl_s: float = DEFAULT_PAGE_TTL_S,
        detail_ttl_s: float = DEFAULT_DETAIL_TTL_S,
        page_max_entries: int = DEFAULT_PAGE_MAX_ENTRIES,
        detail_max_entries: int = DEFAULT_DETAIL_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
        stats: Optional[StatsTracker] = None,
    ) -> None:
        self.client = client
        self.classifier = classifier or GenreClassifier()
        self.stats_tracker = stats or StatsTracker()
        self._pages: TTLStore[Page] = TTLStore(page_ttl_s, page_max_entries, clock=clock)
        self._details: TTLStore[BookDetail] = TTLStore(detail_ttl_s, detail_max_entries, clock=clock)
        self._inflight_lock = threading.Lock()
        self._inflight: Dict[PageKey, "Future[Page]"] = {}

    def get_or_fetch_page(self, request: SearchRequest) -> Page:
        key = request.cache_key()
        cached = self._pages.get(key)
        if cached is not None:
            self.stats_tracker.inc("page_hits")
            logger.debug("page hit | query=%s | page=%s", request.query_text, request.page)
            return cached

        with self._inflight_lock:
            # re-check: a fetch may have completed between the first lookup and here
            cached = self._pages.get(key)
            if cached is not None:
                self.stats_tracker.inc("page_hits")
                return cached
            flight = self._inflight.get(key)
            leader = flight is None
            if leader:
                flight = Future()
                self._inflight[key] = flight

        if not leader:
            self.stats_tracker.inc("inflight_waits")
            logger.debug("joining in-flight fetch | query=%s | page=%s", request.query_text, request.page)
            return flight.result()

        self.stats_tracker.inc("page_misses")
        try:
            page = self._populate(request)
        except BaseException as e:
            flight.set_exception(e)
            raise
        else:
            flight.set_result(page)
            return page
        finally:
            with self._inflight_lock:
                self._inflight.pop(key, None)

    def _populate(self, request: SearchRequest) -> Page:
        self.stats_tracker.inc("fetches")
        try:
            raw = self.client.fetch_page(request.query_text, request.page, request.page_size)
            items = decode_catalog_items(raw)
        except Exception as e:
            self.stats_tracker.inc("fetch_errors")
            logger.info(
                "page fetch failed | query=%s | page=%s | err=%r",
                request.query_text,
                request.page,
                e,
            )
            raise

        summaries = []
        for item in items[: request.page_size]:
            detail = build_detail(item, self.classifier)
            self._details.set(detail.isbn, detail)
            summaries.append(detail.summary())
        page = tuple(summaries)
        self._pages.set(request.cache_key(), page)
        logger.info(
            "page cached | query=%s | page=%s | items=%s",
            request.query_text,
            request.page,
            len(page),
        )
        return page

    def get_or_fetch_detail(self, isbn: str) -> BookDetail:
        key = normalize_isbn(isbn)
        detail = self._details.get(key) if key else None
        if detail is None:
            self.stats_tracker.inc("detail_misses")
            raise DetailNotCached(isbn)
        self.stats_tracker.inc("detail_hits")
        return detail

    def peek_page(self, request: SearchRequest) -> Optional[Page]:
        return self._pages.get(request.cache_key())

    def clear(self) -> None:
        self._pages.clear()
        self._details.clear()

    def stats(self) -> CacheStatsSnapshot:
        return self.stats_tracker.snapshot()

    def sizes(self) -> Dict[str, int]:
        return {"pages": self._pages.size(), "details": self._details.size()}
