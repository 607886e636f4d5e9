from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import wait as wait_futures
from typing import Optional, Set

from bookclub_catalog.core.cache_store import CacheStore
from bookclub_catalog.core.models import SearchRequest

logger = logging.getLogger(__name__)

DEFAULT_PREFETCH_WORKERS = 4


class PrefetchScheduler:
    """
    Fire-and-forget cache warming on a bounded worker pool.

    Each scheduled request gets exactly one get_or_fetch_page call. Errors are logged and
    counted, never raised to whoever scheduled the task, and never retried.
    """

    def __init__(self, cache: CacheStore, *, max_workers: int = DEFAULT_PREFETCH_WORKERS) -> None:
        self.cache = cache
        self.max_workers = max(1, int(max_workers))
        self._pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="prefetch")
        self._lock = threading.Lock()
        self._pending: Set[Future] = set()
        self._closed = False

    def schedule_prefetch(self, request: SearchRequest) -> None:
        with self._lock:
            if self._closed:
                logger.warning(
                    "prefetch dropped, scheduler is shut down | query=%s | page=%s",
                    request.query_text,
                    request.page,
                )
                return
            fut = self._pool.submit(self._run, request)
            self._pending.add(fut)
        self.cache.stats_tracker.inc("prefetch_scheduled")
        fut.add_done_callback(self._forget)

    def _forget(self, fut: Future) -> None:
        with self._lock:
            self._pending.discard(fut)

    def _run(self, request: SearchRequest) -> None:
        try:
            page = self.cache.get_or_fetch_page(request)
        except Exception as e:
            self.cache.stats_tracker.inc("prefetch_errors")
            logger.warning(
                "prefetch failed | query=%s | page=%s | err=%r",
                request.query_text,
                request.page,
                e,
            )
            return
        self.cache.stats_tracker.inc("prefetch_done")
        logger.info(
            "next page caching completed | query=%s | page=%s | items=%s",
            request.query_text,
            request.page,
            len(page),
        )

    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every scheduled prefetch has finished. False on timeout."""
        with self._lock:
            futures = list(self._pending)
        if not futures:
            return True
        _, not_done = wait_futures(futures, timeout=timeout)
        return not not_done

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._pool.shutdown(wait=wait)
