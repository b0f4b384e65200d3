"""
Unit tests for the reference snapshot cache: TTL, invalidation, stale fallback,
pagination and single-flight refresh.
Run from backend: python -m pytest tests/test_reference_cache.py -v
"""
import threading
import time

import pytest


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def _entries(kind, *names):
    from labelcheck.reference.reference_schema import ReferenceEntry
    return [ReferenceEntry(canonical_name=n, dataset_kind=kind) for n in names]


def _store():
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.reference.reference_store import InMemoryReferenceStore
    return InMemoryReferenceStore({
        DatasetKind.GRAS: _entries(DatasetKind.GRAS, "Water", "Salt", "Sugar"),
        DatasetKind.ALLERGEN_DERIVATIVE: _entries(DatasetKind.ALLERGEN_DERIVATIVE, "Milk"),
    })


def _cache(store, clock=None, **kwargs):
    from labelcheck.reference.reference_cache import ReferenceCache
    kwargs.setdefault("ttl_seconds", 100)
    kwargs.setdefault("page_size", 1000)
    kwargs.setdefault("failure_backoff_seconds", 60)
    return ReferenceCache(store, clock=clock or FakeClock(), **kwargs)


def test_get_loads_once_within_ttl():
    """Second get inside the TTL is served from memory."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    cache = _cache(store)
    first = cache.get(DatasetKind.GRAS)
    second = cache.get(DatasetKind.GRAS)
    assert first is second
    assert len(first) == 3
    assert first.version == 1
    assert store.calls[DatasetKind.GRAS] == 1


def test_ttl_expiry_triggers_reload():
    """After the TTL the next get reloads and bumps the version."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    clock = FakeClock()
    cache = _cache(store, clock)
    cache.get(DatasetKind.GRAS)
    clock.advance(99)
    assert cache.get(DatasetKind.GRAS).version == 1
    clock.advance(2)
    assert cache.get(DatasetKind.GRAS).version == 2
    assert store.calls[DatasetKind.GRAS] == 2


def test_datasets_have_independent_slots():
    """Loading one dataset does not load another."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    cache = _cache(store)
    cache.get(DatasetKind.GRAS)
    assert store.calls[DatasetKind.ALLERGEN_DERIVATIVE] == 0
    assert cache.stats()[DatasetKind.ALLERGEN_DERIVATIVE.value] is None


def test_invalidate_forces_reload():
    """invalidate() makes the next get reload regardless of TTL."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    cache = _cache(store)
    assert "Garlic" not in [e.canonical_name for e in cache.get(DatasetKind.GRAS).entries]
    store.set_entries(DatasetKind.GRAS, _entries(DatasetKind.GRAS, "Water", "Garlic"))
    cache.invalidate(DatasetKind.GRAS)
    snap = cache.get(DatasetKind.GRAS)
    assert [e.canonical_name for e in snap.entries] == ["Water", "Garlic"]
    assert snap.version == 2


def test_invalidate_all():
    """invalidate_all() marks every loaded dataset for reload."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    cache = _cache(store)
    cache.get(DatasetKind.GRAS)
    cache.get(DatasetKind.ALLERGEN_DERIVATIVE)
    cache.invalidate_all()
    stats = cache.stats()
    assert stats["GRAS"]["invalidated"] is True
    assert stats["GRAS"]["is_valid"] is False
    cache.get(DatasetKind.ALLERGEN_DERIVATIVE)
    assert store.calls[DatasetKind.ALLERGEN_DERIVATIVE] == 2


def test_cold_failure_raises_data_unavailable():
    """Nothing ever loaded + store failure -> DataUnavailableError."""
    from labelcheck.errors import DataUnavailableError, ReferenceStoreError
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    store.error = ReferenceStoreError("down")
    cache = _cache(store)
    with pytest.raises(DataUnavailableError) as exc:
        cache.get(DatasetKind.GRAS)
    assert exc.value.metadata["dataset"] == "GRAS"


def test_stale_snapshot_served_on_refresh_failure():
    """Expired snapshot is served when the reload fails; retried after backoff."""
    from labelcheck.errors import ReferenceStoreError
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    clock = FakeClock()
    cache = _cache(store, clock)
    original = cache.get(DatasetKind.GRAS)

    clock.advance(101)
    store.error = ReferenceStoreError("down")
    assert cache.get(DatasetKind.GRAS) is original
    assert store.calls[DatasetKind.GRAS] == 2
    assert cache.stats()["GRAS"]["last_error"].startswith("ReferenceStoreError")

    # inside the backoff window the store is not hit again
    clock.advance(10)
    assert cache.get(DatasetKind.GRAS) is original
    assert store.calls[DatasetKind.GRAS] == 2

    store.error = None
    clock.advance(60)
    refreshed = cache.get(DatasetKind.GRAS)
    assert refreshed.version == 2
    assert cache.stats()["GRAS"]["last_error"] is None


def test_pagination_loops_until_short_page():
    """Page size 2 over 3 entries -> two store calls, all entries loaded."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    cache = _cache(store, page_size=2)
    snap = cache.get(DatasetKind.GRAS)
    assert [e.canonical_name for e in snap.entries] == ["Water", "Salt", "Sugar"]
    assert store.calls[DatasetKind.GRAS] == 2


def test_pagination_exact_multiple_ends_on_empty_page():
    """Entries an exact multiple of the page size end on one extra empty page."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    cache = _cache(store, page_size=1)
    snap = cache.get(DatasetKind.ALLERGEN_DERIVATIVE)
    assert len(snap) == 1
    assert store.calls[DatasetKind.ALLERGEN_DERIVATIVE] == 2


def test_repeated_page_token_is_a_failure():
    """A store that never advances its token cannot loop forever."""
    from labelcheck.errors import DataUnavailableError
    from labelcheck.reference.reference_schema import DatasetKind
    from labelcheck.reference.reference_store import ReferencePage

    class StuckStore:
        def list_active(self, kind, page_token=None, page_size=1000):
            return ReferencePage(entries=[], next_page_token="5")

    with pytest.raises(DataUnavailableError):
        _cache(StuckStore()).get(DatasetKind.GRAS)


def test_single_flight_refresh():
    """Concurrent gets on a cold dataset share one bulk load."""
    from labelcheck.reference.reference_cache import ReferenceCache
    from labelcheck.reference.reference_schema import DatasetKind

    class SlowStore:
        def __init__(self, inner):
            self.inner = inner

        def list_active(self, kind, page_token=None, page_size=1000):
            time.sleep(0.2)
            return self.inner.list_active(kind, page_token, page_size)

    inner = _store()
    cache = ReferenceCache(SlowStore(inner), ttl_seconds=100, page_size=1000, failure_backoff_seconds=60)
    results = []
    errors = []

    def worker():
        try:
            results.append(cache.get(DatasetKind.GRAS))
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert not errors
    assert len(results) == 8
    assert inner.calls[DatasetKind.GRAS] == 1
    assert all(r is results[0] for r in results)


def test_stats_and_warm():
    """warm() reports per-dataset success; stats() reports counts and versions."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    cache = _cache(store)
    loaded = cache.warm([DatasetKind.GRAS, DatasetKind.NDI])
    assert loaded == {DatasetKind.GRAS: True, DatasetKind.NDI: True}
    stats = cache.stats()
    assert stats["GRAS"]["count"] == 3
    assert stats["GRAS"]["version"] == 1
    assert stats["GRAS"]["expires_in_seconds"] == 100
    assert stats["NDI"]["count"] == 0
    assert stats["ODI"] is None


def test_warm_reports_failure_without_raising():
    """A dataset that cannot load is reported False by warm()."""
    from labelcheck.errors import ReferenceStoreError
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    store.error = ReferenceStoreError("down")
    assert _cache(store).warm([DatasetKind.GRAS]) == {DatasetKind.GRAS: False}


def test_close_drops_snapshots():
    """After close() the next get reloads."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    cache = _cache(store)
    cache.get(DatasetKind.GRAS)
    cache.close()
    assert cache.stats()["GRAS"] is None
    cache.get(DatasetKind.GRAS)
    assert store.calls[DatasetKind.GRAS] == 2


def test_invalidate_during_refresh_forces_another_reload():
    """An invalidation that lands while a load is in flight is not lost."""
    from labelcheck.reference.reference_schema import DatasetKind

    entered = threading.Event()
    release = threading.Event()

    class BlockingStore:
        def __init__(self, inner):
            self.inner = inner
            self.block = True

        def list_active(self, kind, page_token=None, page_size=1000):
            if self.block:
                self.block = False
                entered.set()
                release.wait(5)
            return self.inner.list_active(kind, page_token, page_size)

    inner = _store()
    cache = _cache(BlockingStore(inner))
    results = []
    worker = threading.Thread(target=lambda: results.append(cache.get(DatasetKind.GRAS)))
    worker.start()
    assert entered.wait(5)

    cache.invalidate(DatasetKind.GRAS)
    release.set()
    worker.join(5)

    assert results[0].version == 1
    assert cache.stats()["GRAS"]["invalidated"] is True
    reloaded = cache.get(DatasetKind.GRAS)
    assert reloaded.version == 2
    assert inner.calls[DatasetKind.GRAS] == 2


def test_get_never_returns_a_closed_snapshot():
    """close() racing the lock-free read still yields a loaded snapshot."""
    from labelcheck.reference.reference_schema import DatasetKind
    store = _store()
    clock = FakeClock()
    cache = _cache(store, clock)
    cache.get(DatasetKind.GRAS)

    class ClosingClock:
        def __init__(self):
            self.fired = False

        def __call__(self):
            if not self.fired:
                self.fired = True
                cache.close()
            return clock()

    cache._clock = ClosingClock()
    snap = cache.get(DatasetKind.GRAS)
    assert snap is not None
    assert len(snap) == 3
