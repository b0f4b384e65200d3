"""
In-memory cache of reference-dataset snapshots with TTL.
One slot per dataset, each with its own TTL clock and its own refresh lock:
concurrent get() calls on an expired dataset share one bulk load.
Snapshots are immutable and published by a single assignment, so readers
never lock.
"""
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional

from labelcheck.config import (
    get_reference_cache_ttl_seconds,
    get_reference_page_size,
    get_refresh_failure_backoff_seconds,
)
from labelcheck.errors import DataUnavailableError, ReferenceStoreError
from labelcheck.normalization.normalizer import TokenFilter
from .reference_schema import DatasetKind, DatasetSnapshot, ReferenceEntry
from .reference_store import ReferenceStore

logger = logging.getLogger(__name__)


@dataclass
class _CacheSlot:
    lock: threading.Lock = field(default_factory=threading.Lock)
    snapshot: Optional[DatasetSnapshot] = None
    version: int = 0
    # invalidate() bumps generation; a snapshot is current only if it was
    # loaded under the latest generation
    generation: int = 0
    loaded_generation: int = -1
    failed_at: Optional[float] = None
    last_error: Optional[str] = None
    loads: int = 0


class ReferenceCache:
    """
    get(kind) -> DatasetSnapshot with bounded staleness.
    - Fresh snapshot (age < TTL, not invalidated): returned without locking.
    - Otherwise one caller bulk-loads from the store; the others wait on the
      dataset lock and then see the new snapshot.
    - Load failure with a previous snapshot: stale snapshot served (warning) and
      the store is not retried until failure_backoff_seconds have passed.
    - Load failure with nothing loaded yet: DataUnavailableError.
    """

    def __init__(
        self,
        store: ReferenceStore,
        ttl_seconds: Optional[float] = None,
        page_size: Optional[int] = None,
        token_filter: Optional[TokenFilter] = None,
        failure_backoff_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._store = store
        self._ttl = ttl_seconds if ttl_seconds is not None else get_reference_cache_ttl_seconds()
        self._page_size = page_size or get_reference_page_size()
        self._token_filter = token_filter or TokenFilter()
        self._backoff = (
            failure_backoff_seconds if failure_backoff_seconds is not None
            else get_refresh_failure_backoff_seconds()
        )
        self._clock = clock
        self._slots: dict[DatasetKind, _CacheSlot] = {kind: _CacheSlot() for kind in DatasetKind}
        self._invalidate_lock = threading.Lock()

    @property
    def token_filter(self) -> TokenFilter:
        return self._token_filter

    def _is_current(self, slot: _CacheSlot, snap: Optional[DatasetSnapshot], now: float) -> bool:
        return (
            snap is not None
            and slot.loaded_generation == slot.generation
            and now - snap.loaded_at < self._ttl
        )

    def get(self, kind: DatasetKind) -> DatasetSnapshot:
        slot = self._slots[kind]
        # One read of the published reference; checked and returned as the same object
        snap = slot.snapshot
        if self._is_current(slot, snap, self._clock()):
            logger.debug(
                "REFERENCE_CACHE hit kind=%s count=%d version=%d",
                kind.value, len(snap), snap.version,
            )
            return snap

        with slot.lock:
            now = self._clock()
            stale = slot.snapshot
            if self._is_current(slot, stale, now):
                # Refreshed by the caller we waited on
                return stale
            if (
                stale is not None
                and slot.failed_at is not None
                and now - slot.failed_at < self._backoff
            ):
                logger.debug(
                    "REFERENCE_CACHE backoff kind=%s serving stale version=%d",
                    kind.value, stale.version,
                )
                return stale
            return self._refresh(kind, slot, stale)

    def _refresh(self, kind: DatasetKind, slot: _CacheSlot, stale: Optional[DatasetSnapshot]) -> DatasetSnapshot:
        generation = slot.generation
        logger.info(
            "REFERENCE_CACHE miss kind=%s reason=%s - loading from store",
            kind.value, "cold" if stale is None else "expired_or_invalidated",
        )
        started = self._clock()
        try:
            entries = self._load_all(kind)
        except Exception as e:
            slot.failed_at = self._clock()
            slot.last_error = f"{type(e).__name__}: {e}"
            if stale is None:
                logger.error(
                    "REFERENCE_CACHE load failed kind=%s no snapshot available error=%s",
                    kind.value, slot.last_error,
                )
                raise DataUnavailableError(
                    f"Reference dataset {kind.value} could not be loaded",
                    metadata={"dataset": kind.value, "error": slot.last_error},
                ) from e
            logger.warning(
                "REFERENCE_CACHE stale_served kind=%s version=%d age=%.0fs error=%s",
                kind.value, stale.version, started - stale.loaded_at, slot.last_error,
            )
            return stale

        slot.version += 1
        snapshot = DatasetSnapshot.build(
            kind,
            entries,
            version=slot.version,
            loaded_at=self._clock(),
            token_filter=self._token_filter,
        )
        slot.snapshot = snapshot
        slot.loaded_generation = generation
        slot.failed_at = None
        slot.last_error = None
        slot.loads += 1
        logger.info(
            "REFERENCE_CACHE refreshed kind=%s count=%d version=%d elapsed=%.3fs",
            kind.value, len(snapshot), snapshot.version, self._clock() - started,
        )
        return snapshot

    def _load_all(self, kind: DatasetKind) -> list[ReferenceEntry]:
        """Page through the store until it returns no next token (short page)."""
        entries: list[ReferenceEntry] = []
        token: Optional[str] = None
        pages = 0
        while True:
            page = self._store.list_active(kind, token, self._page_size)
            pages += 1
            entries.extend(page.entries)
            if not page.next_page_token:
                break
            if page.next_page_token == token:
                raise ReferenceStoreError(
                    f"Store repeated page token {token!r} for {kind.value}",
                    metadata={"dataset": kind.value, "pages": pages},
                )
            token = page.next_page_token
        logger.debug("REFERENCE_CACHE loaded kind=%s rows=%d pages=%d", kind.value, len(entries), pages)
        return entries

    def invalidate(self, kind: DatasetKind) -> None:
        """Force the next get(kind) to reload regardless of TTL (admin mutation hook)."""
        slot = self._slots[kind]
        with self._invalidate_lock:
            slot.generation += 1
            slot.failed_at = None
        logger.info("REFERENCE_CACHE invalidated kind=%s", kind.value)

    def invalidate_all(self) -> None:
        for kind in DatasetKind:
            self.invalidate(kind)

    def warm(self, kinds: Optional[Iterable[DatasetKind]] = None) -> dict[DatasetKind, bool]:
        """Load datasets eagerly. Failures are logged, not raised."""
        result = {}
        for kind in kinds or list(DatasetKind):
            try:
                self.get(kind)
                result[kind] = True
            except DataUnavailableError as e:
                logger.warning("REFERENCE_CACHE warm failed kind=%s error=%s", kind.value, e)
                result[kind] = False
        return result

    def stats(self) -> dict[str, Optional[dict]]:
        now = self._clock()
        out: dict[str, Optional[dict]] = {}
        for kind, slot in self._slots.items():
            snap = slot.snapshot
            if snap is None:
                out[kind.value] = None
                continue
            age = now - snap.loaded_at
            out[kind.value] = {
                "count": len(snap),
                "version": snap.version,
                "age_seconds": round(age, 3),
                "expires_in_seconds": round(self._ttl - age, 3),
                "is_valid": self._is_current(slot, snap, now),
                "invalidated": slot.loaded_generation != slot.generation,
                "loads": slot.loads,
                "last_error": slot.last_error,
            }
        return out

    def close(self) -> None:
        """Drop every snapshot (service shutdown)."""
        for slot in self._slots.values():
            with slot.lock:
                slot.snapshot = None
                slot.loaded_generation = -1
        logger.info("REFERENCE_CACHE closed")
