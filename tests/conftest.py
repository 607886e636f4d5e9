from __future__ import annotations

import json
import threading
import time
from typing import Dict, List, Optional, Tuple

import pytest


def catalog_item(n: int, **overrides) -> dict:
    item = {
        "title": f"Book {n}",
        "author": f"Author {n}",
        "isbn13": f"978000000{n:04d}",
        "isbn": f"00000{n:05d}",
        "cover": f"https://covers.example.com/{n}.jpg",
        "description": f"Description {n}",
        "categoryName": "Fiction>Mystery",
        "publisher": "Example House",
        "pubDate": "2020-01-01",
    }
    item.update(overrides)
    return item


def catalog_payload(items: List[dict]) -> str:
    return json.dumps({"version": "20131101", "totalResults": len(items), "item": items})


class FakeCatalogClient:
    """Stands in for CatalogClient; records every call."""

    def __init__(self, pages: Optional[Dict[Tuple[str, int], str]] = None, *, delay_s: float = 0.0) -> None:
        self.pages: Dict[Tuple[str, int], str] = dict(pages or {})
        self.errors: Dict[Tuple[str, int], List[Exception]] = {}
        self.gates: Dict[Tuple[str, int], threading.Event] = {}
        self.delay_s = delay_s
        self.calls: List[Tuple[str, int, int]] = []
        self._lock = threading.Lock()

    def fail_next(self, query: str, page: int, error: Exception) -> None:
        self.errors.setdefault((query, page), []).append(error)

    def gate(self, query: str, page: int) -> threading.Event:
        evt = threading.Event()
        self.gates[(query, page)] = evt
        return evt

    def calls_for(self, query: str, page: int) -> int:
        with self._lock:
            return sum(1 for q, p, _ in self.calls if (q, p) == (query, page))

    def fetch_page(self, query_text: str, page: int, page_size: int) -> str:
        with self._lock:
            self.calls.append((query_text, page, page_size))
            pending = self.errors.get((query_text, page)) or []
            error = pending.pop(0) if pending else None
        gate = self.gates.get((query_text, page))
        if gate is not None:
            gate.wait(timeout=5)
        if self.delay_s:
            time.sleep(self.delay_s)
        if error is not None:
            raise error
        return self.pages.get((query_text, page), '{"item": []}')


@pytest.fixture
def fake_client() -> FakeCatalogClient:
    return FakeCatalogClient()


@pytest.fixture
def dune_client() -> FakeCatalogClient:
    return FakeCatalogClient(
        {
            ("dune", 1): catalog_payload([catalog_item(1), catalog_item(2), catalog_item(3)]),
            ("dune", 2): catalog_payload([catalog_item(4), catalog_item(5)]),
        }
    )


@pytest.fixture
def make_item():
    return catalog_item


@pytest.fixture
def make_payload():
    return catalog_payload


@pytest.fixture
def client_factory():
    return FakeCatalogClient
