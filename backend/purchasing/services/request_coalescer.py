# Overview: Single-flight read cache shared by the purchase read surface.

"""
Request Coalescer

WHY: Detail, timeline and payment-list reads for one purchase are requested
repeatedly (and often concurrently) by the UI layer. Concurrent identical
reads should share one load, and repeated reads within a short window should
not hit the database at all.

DESIGN:
- One instance per app (app.extensions["purchase_cache"]), never a module global
- Keyed single-flight: the first caller for a key runs the loader, concurrent
  callers for the same key wait on it and receive the same result or error
- Successful results are cached for ttl_seconds; failures are never cached
- force_refresh bypasses the fresh-entry check but still joins an in-flight load
- Expired entries are swept on every get(); with serve_stale_on_error only
  the max_stale_entries most recent expired entries survive as fallbacks
- Stale values are served after a TransientDataAccessError only when
  serve_stale_on_error is enabled, and always with a warning log
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from purchasing.errors import TransientDataAccessError


@dataclass
class _CacheEntry:
    value: Any
    stored_at: float


@dataclass
class _Flight:
    done: threading.Event = field(default_factory=threading.Event)
    value: Any = None
    error: BaseException | None = None


class RequestCoalescer:
    def __init__(
        self,
        *,
        ttl_seconds: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
        serve_stale_on_error: bool = False,
        max_stale_entries: int = 256,
        logger: logging.Logger | None = None,
    ):
        if ttl_seconds < 0:
            raise ValueError("ttl_seconds cannot be negative")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self.serve_stale_on_error = serve_stale_on_error
        self.max_stale_entries = max(0, max_stale_entries)
        self._logger = logger or logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._entries: dict[str, _CacheEntry] = {}
        self._flights: dict[str, _Flight] = {}

    def _is_fresh(self, entry: _CacheEntry, now: float) -> bool:
        return (now - entry.stored_at) < self.ttl_seconds

    def _sweep(self, now: float) -> None:
        """Drop expired entries beyond the stale-fallback allowance. Caller holds the lock."""
        expired = sorted(
            (entry.stored_at, key)
            for key, entry in self._entries.items()
            if not self._is_fresh(entry, now)
        )
        keep = self.max_stale_entries if self.serve_stale_on_error else 0
        for _, key in expired[:max(0, len(expired) - keep)]:
            del self._entries[key]

    def get(self, key: str, loader: Callable[[], Any], *, force_refresh: bool = False) -> Any:
        """
        Return the cached value for key, or load it exactly once.

        Args:
            key: Cache key, e.g. "purchase:12:timeline"
            loader: Zero-argument callable producing the value
            force_refresh: Skip the fresh-entry check

        Raises:
            Whatever loader raises (shared with every waiter of the flight)
        """
        with self._lock:
            now = self._clock()
            self._sweep(now)
            entry = self._entries.get(key)
            if not force_refresh and entry is not None and self._is_fresh(entry, now):
                return entry.value

            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[key] = flight

        if not leader:
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.value

        try:
            value = loader()
        except TransientDataAccessError as exc:
            stale = self._stale_value(key)
            if stale is not None:
                self._logger.warning(
                    "Serving stale cache entry for %s after read failure: %s", key, exc
                )
                flight.value = stale.value
                return stale.value
            flight.error = exc
            raise
        except Exception as exc:
            flight.error = exc
            raise
        else:
            with self._lock:
                # A concurrent invalidate() drops the flight; do not resurrect the key
                if self._flights.get(key) is flight:
                    self._entries[key] = _CacheEntry(value=value, stored_at=self._clock())
            flight.value = value
            return value
        finally:
            with self._lock:
                if self._flights.get(key) is flight:
                    del self._flights[key]
            flight.done.set()

    def _stale_value(self, key: str) -> _CacheEntry | None:
        if not self.serve_stale_on_error:
            return None
        with self._lock:
            return self._entries.get(key)

    def peek(self, key: str) -> Any:
        """Fresh cached value or None, without loading."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or not self._is_fresh(entry, self._clock()):
                return None
            return entry.value

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._flights.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._entries if k.startswith(prefix)]
            for k in keys:
                del self._entries[k]
            for k in [k for k in self._flights if k.startswith(prefix)]:
                del self._flights[k]
            return len(keys)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._flights.clear()

    def __len__(self) -> int:
        """Retained entries: fresh ones plus any kept as stale fallbacks."""
        with self._lock:
            self._sweep(self._clock())
            return len(self._entries)
