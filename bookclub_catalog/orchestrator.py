from __future__ import annotations

import logging
from dataclasses import replace
from typing import Optional

from bookclub_catalog.config import CatalogConfig
from bookclub_catalog.core.cache_store import CacheStore, Page, PageFetcher
from bookclub_catalog.core.errors import NoPopularBookFound
from bookclub_catalog.core.genre import GenreClassifier, load_keyword_table
from bookclub_catalog.core.models import BookDetail, PopularBook, SearchRequest
from bookclub_catalog.core.prefetch import PrefetchScheduler
from bookclub_catalog.integrations.http_client import CatalogClient, TokenBucket
from bookclub_catalog.persistence import BookRepository

logger = logging.getLogger(__name__)


class SearchOrchestrator:
    """
    Public surface of the catalog lookup pipeline.

    search() answers from the cache (filling it on a miss) and then warms the next page in
    the background. book_detail() reads the ISBN cache and overlays the caller's favorite
    flag. popular_book() only talks to the relational side.
    """

    def __init__(self, cache: CacheStore, prefetch: PrefetchScheduler, books: BookRepository) -> None:
        self.cache = cache
        self.prefetch = prefetch
        self.books = books

    def search(self, request: SearchRequest) -> Page:
        logger.info(
            "search | query=%s | page=%s | size=%s",
            request.query_text,
            request.page,
            request.page_size,
        )
        page = self.cache.get_or_fetch_page(request)
        self.prefetch.schedule_prefetch(request.next_page())
        return page

    def book_detail(self, isbn: str, user_id: Optional[int] = None) -> BookDetail:
        detail = self.cache.get_or_fetch_detail(isbn)
        if user_id is None:
            return detail

        book = self.books.find_book_by_isbn(isbn)
        if book is None:
            return detail
        is_favorite = self.books.exists_active_favorite(user_id, book)
        logger.debug("favorite overlay | isbn=%s | user=%s | favorite=%s", isbn, user_id, is_favorite)
        return replace(detail, is_favorite=is_favorite)

    def popular_book(self) -> PopularBook:
        book = self.books.find_book_with_most_rooms()
        if book is None:
            raise NoPopularBookFound("no persisted books to rank")
        return PopularBook(
            title=book.title,
            author=book.author,
            isbn=book.isbn,
            cover_url=book.cover_url,
            description=book.description,
            genre=book.genre,
            publisher=book.publisher,
            published_date=book.published_date,
            book_id=book.book_id,
            room_count=book.room_count,
        )

    def close(self, wait: bool = True) -> None:
        self.prefetch.shutdown(wait=wait)

    def __enter__(self) -> "SearchOrchestrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def build_orchestrator(
    config: CatalogConfig,
    books: BookRepository,
    *,
    client: Optional[PageFetcher] = None,
) -> SearchOrchestrator:
    """Wire one CacheStore and one PrefetchScheduler for the life of the process."""
    if client is None:
        client = CatalogClient(
            endpoint=config.endpoint,
            api_key=config.api_key,
            api_key_param=config.api_key_param,
            timeout_s=config.timeout_s,
            limiter=TokenBucket(config.rate_per_sec, config.burst),
        )

    classifier = GenreClassifier(
        load_keyword_table(config.genre_keywords_file) if config.genre_keywords_file else None
    )
    cache = CacheStore(
        client,
        classifier=classifier,
        page_ttl_s=config.page_ttl_s,
        detail_ttl_s=config.detail_ttl_s,
        page_max_entries=config.page_max_entries,
        detail_max_entries=config.detail_max_entries,
    )
    prefetch = PrefetchScheduler(cache, max_workers=config.prefetch_workers)
    logger.info(
        "catalog pipeline ready | endpoint=%s | prefetch_workers=%s | page_ttl=%ss | detail_ttl=%ss",
        config.endpoint,
        config.prefetch_workers,
        config.page_ttl_s,
        config.detail_ttl_s,
    )
    return SearchOrchestrator(cache, prefetch, books)
