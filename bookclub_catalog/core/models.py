from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Tuple

from bookclub_catalog.core.normalize import resolve_isbn


class Genre(Enum):
    FICTION = "Fiction"
    MYSTERY = "Mystery & Thriller"
    SF_FANTASY = "Science Fiction & Fantasy"
    ROMANCE = "Romance"
    POETRY = "Poetry & Drama"
    ESSAY = "Essay"
    HISTORY = "History"
    HUMANITIES = "Humanities"
    SOCIETY = "Politics & Society"
    BUSINESS = "Economics & Business"
    SELF_HELP = "Self-Help"
    SCIENCE = "Science"
    TECHNOLOGY = "Computers & Technology"
    ARTS = "Arts"
    RELIGION = "Religion"
    CHILDREN = "Children"
    COMICS = "Comics"
    TRAVEL = "Travel"
    NONFICTION = "Nonfiction"
    OTHER = "Other"

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class SearchRequest:
    # page_size is excluded from equality; the cache key is (query_text, page)
    query_text: str
    page: int = 1
    page_size: int = field(default=10, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.query_text, str) or not self.query_text.strip():
            raise ValueError("query_text must be a non-empty string")
        if isinstance(self.page, bool) or not isinstance(self.page, int) or self.page < 1:
            raise ValueError(f"page must be a positive integer (got {self.page!r})")
        if isinstance(self.page_size, bool) or not isinstance(self.page_size, int) or self.page_size < 1:
            raise ValueError(f"page_size must be a positive integer (got {self.page_size!r})")

    def next_page(self) -> "SearchRequest":
        return SearchRequest(query_text=self.query_text, page=self.page + 1, page_size=self.page_size)

    def cache_key(self) -> Tuple[str, int]:
        return (self.query_text, self.page)


@dataclass(frozen=True)
class RawCatalogItem:
    title: str = ""
    author: str = ""
    isbn13: str = ""
    isbn10: str = ""
    cover_url: str = ""
    description: str = ""
    category_text: str = ""
    publisher: str = ""
    published_date: str = ""

    @property
    def resolved_isbn(self) -> str:
        return resolve_isbn(self.isbn13, self.isbn10)


@dataclass(frozen=True)
class BookSummary:
    title: str
    author: str
    isbn: str
    cover_url: str


@dataclass(frozen=True)
class BookDetail:
    title: str
    author: str
    isbn: str
    cover_url: str
    description: str
    genre: Genre
    publisher: str
    published_date: str
    is_favorite: bool = False

    def summary(self) -> BookSummary:
        return BookSummary(title=self.title, author=self.author, isbn=self.isbn, cover_url=self.cover_url)


@dataclass(frozen=True)
class PopularBook(BookDetail):
    book_id: int = 0
    room_count: int = 0


@dataclass(frozen=True)
class PersistedBook:
    book_id: int
    isbn: str
    title: str
    author: str = ""
    cover_url: str = ""
    description: str = ""
    genre: Genre = Genre.OTHER
    publisher: str = ""
    published_date: str = ""
    room_count: int = 0


@dataclass(frozen=True)
class CacheStatsSnapshot:
    page_hits: int
    page_misses: int
    detail_hits: int
    detail_misses: int
    fetches: int
    fetch_errors: int
    inflight_waits: int
    prefetch_scheduled: int
    prefetch_done: int
    prefetch_errors: int
