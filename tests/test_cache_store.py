import threading

import pytest

from bookclub_catalog.core.cache_store import CacheStore
from bookclub_catalog.core.errors import CatalogHttpError, CatalogParseError, CatalogUnavailable, DetailNotCached
from bookclub_catalog.core.models import Genre, SearchRequest


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_second_lookup_is_a_hit_with_no_fetch(dune_client) -> None:
    cache = CacheStore(dune_client)
    req = SearchRequest("dune", page=1, page_size=10)

    first = cache.get_or_fetch_page(req)
    second = cache.get_or_fetch_page(req)

    assert first == second
    assert [b.title for b in first] == ["Book 1", "Book 2", "Book 3"]
    assert dune_client.calls == [("dune", 1, 10)]
    stats = cache.stats()
    assert (stats.page_misses, stats.page_hits, stats.fetches) == (1, 1, 1)


def test_page_fill_writes_details_through(dune_client) -> None:
    cache = CacheStore(dune_client)
    page = cache.get_or_fetch_page(SearchRequest("dune", page=1))

    detail = cache.get_or_fetch_detail(page[0].isbn)

    assert detail.title == "Book 1"
    assert detail.description == "Description 1"
    assert detail.genre is Genre.MYSTERY
    assert detail.is_favorite is False
    assert len(dune_client.calls) == 1


def test_detail_lookup_normalizes_isbn(dune_client) -> None:
    cache = CacheStore(dune_client)
    cache.get_or_fetch_page(SearchRequest("dune", page=1))
    assert cache.get_or_fetch_detail("978-000000-0001").isbn == "9780000000001"


def test_detail_miss_raises_without_network(fake_client) -> None:
    cache = CacheStore(fake_client)
    with pytest.raises(DetailNotCached):
        cache.get_or_fetch_detail("9780000000001")
    assert fake_client.calls == []
    assert cache.stats().detail_misses == 1


def test_failures_are_not_cached(dune_client) -> None:
    dune_client.fail_next("dune", 1, CatalogUnavailable("timeout"))
    cache = CacheStore(dune_client)
    req = SearchRequest("dune", page=1)

    with pytest.raises(CatalogUnavailable):
        cache.get_or_fetch_page(req)
    assert cache.peek_page(req) is None

    page = cache.get_or_fetch_page(req)

    assert len(page) == 3
    assert dune_client.calls_for("dune", 1) == 2
    assert cache.stats().fetch_errors == 1


def test_parse_error_propagates(client_factory) -> None:
    client = client_factory({("bad", 1): '{"item": [{"title": "no isbn"}]}'})
    cache = CacheStore(client)
    with pytest.raises(CatalogParseError):
        cache.get_or_fetch_page(SearchRequest("bad", page=1))
    with pytest.raises(DetailNotCached):
        cache.get_or_fetch_detail("")


def test_empty_result_page_is_cached(fake_client) -> None:
    cache = CacheStore(fake_client)
    req = SearchRequest("nothing", page=7)
    assert cache.get_or_fetch_page(req) == ()
    assert cache.get_or_fetch_page(req) == ()
    assert len(fake_client.calls) == 1


def test_page_is_capped_at_page_size(client_factory, make_item, make_payload) -> None:
    client = client_factory({("big", 1): make_payload([make_item(n) for n in range(1, 6)])})
    cache = CacheStore(client)
    page = cache.get_or_fetch_page(SearchRequest("big", page=1, page_size=3))
    assert [b.title for b in page] == ["Book 1", "Book 2", "Book 3"]
    with pytest.raises(DetailNotCached):
        cache.get_or_fetch_detail(make_item(4)["isbn13"])


def test_concurrent_misses_share_one_fetch(dune_client) -> None:
    dune_client.delay_s = 0.2
    cache = CacheStore(dune_client)
    req = SearchRequest("dune", page=1)
    n = 10
    barrier = threading.Barrier(n)
    results = [None] * n
    errors = []

    def worker(i: int) -> None:
        barrier.wait()
        try:
            results[i] = cache.get_or_fetch_page(req)
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert errors == []
    assert dune_client.calls_for("dune", 1) == 1
    assert all(r == results[0] for r in results)
    assert len(results[0]) == 3
    stats = cache.stats()
    assert stats.fetches == 1
    assert stats.inflight_waits + stats.page_hits == n - 1


def test_concurrent_misses_share_one_failure(dune_client) -> None:
    dune_client.delay_s = 0.2
    dune_client.fail_next("dune", 1, CatalogHttpError(500))
    cache = CacheStore(dune_client)
    req = SearchRequest("dune", page=1)
    n = 10
    barrier = threading.Barrier(n)
    errors = []
    lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        try:
            cache.get_or_fetch_page(req)
        except CatalogHttpError as e:
            with lock:
                errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(n)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert len(errors) == n
    assert dune_client.calls_for("dune", 1) == 1
    assert all(e.status == 500 for e in errors)


def test_page_entries_expire_but_details_live_longer(dune_client) -> None:
    clock = FakeClock()
    cache = CacheStore(dune_client, page_ttl_s=600, detail_ttl_s=86400, clock=clock)
    req = SearchRequest("dune", page=1)
    page = cache.get_or_fetch_page(req)

    clock.now += 601

    assert cache.peek_page(req) is None
    assert cache.get_or_fetch_detail(page[0].isbn).title == "Book 1"
    cache.get_or_fetch_page(req)
    assert dune_client.calls_for("dune", 1) == 2


def test_clear_drops_everything(dune_client) -> None:
    cache = CacheStore(dune_client)
    cache.get_or_fetch_page(SearchRequest("dune", page=1))
    assert cache.sizes() == {"pages": 1, "details": 3}
    cache.clear()
    assert cache.sizes() == {"pages": 0, "details": 0}
