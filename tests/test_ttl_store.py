from bookclub_catalog.core.ttl_store import TTLStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


def test_entries_expire_after_ttl() -> None:
    clock = FakeClock()
    store = TTLStore(ttl_s=10, max_entries=10, clock=clock)
    store.set("a", 1)

    clock.now += 9.9
    assert store.get("a") == 1

    clock.now += 0.2
    assert store.get("a") is None
    assert store.size() == 0


def test_capacity_evicts_least_recently_used() -> None:
    store = TTLStore(ttl_s=60, max_entries=2)
    store.set("a", 1)
    store.set("b", 2)
    assert store.get("a") == 1

    store.set("c", 3)

    assert "a" in store
    assert "b" not in store
    assert store.get("c") == 3


def test_overwrite_replaces_value() -> None:
    store = TTLStore(ttl_s=60, max_entries=2)
    store.set("a", (1,))
    store.set("a", (2,))
    assert store.get("a") == (2,)
    assert store.size() == 1
