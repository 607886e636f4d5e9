from __future__ import annotations

import threading
from typing import Dict, Optional, Protocol, Set, Tuple

from bookclub_catalog.core.models import PersistedBook
from bookclub_catalog.core.normalize import normalize_isbn


class BookRepository(Protocol):
    """The relational side the orchestrator reads from. Implemented outside this package."""

    def find_book_by_isbn(self, isbn: str) -> Optional[PersistedBook]:
        ...

    def exists_active_favorite(self, user_id: int, book: PersistedBook) -> bool:
        ...

    def find_book_with_most_rooms(self) -> Optional[PersistedBook]:
        ...


class InMemoryBookRepository:
    """Thread-safe BookRepository backed by dicts."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._books: Dict[str, PersistedBook] = {}
        self._favorites: Set[Tuple[int, int]] = set()

    def add_book(self, book: PersistedBook) -> PersistedBook:
        with self._lock:
            self._books[normalize_isbn(book.isbn)] = book
        return book

    def add_favorite(self, user_id: int, book: PersistedBook) -> None:
        with self._lock:
            self._favorites.add((int(user_id), book.book_id))

    def remove_favorite(self, user_id: int, book: PersistedBook) -> None:
        with self._lock:
            self._favorites.discard((int(user_id), book.book_id))

    def find_book_by_isbn(self, isbn: str) -> Optional[PersistedBook]:
        with self._lock:
            return self._books.get(normalize_isbn(isbn))

    def exists_active_favorite(self, user_id: int, book: PersistedBook) -> bool:
        with self._lock:
            return (int(user_id), book.book_id) in self._favorites

    def find_book_with_most_rooms(self) -> Optional[PersistedBook]:
        with self._lock:
            if not self._books:
                return None
            # ties go to the lowest book_id so the answer is stable
            return max(self._books.values(), key=lambda b: (b.room_count, -b.book_id))
