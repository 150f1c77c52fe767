"""
Cacao Backend — Geocoding Response Cache
==========================================

What:  In-memory, time-expiring cache of raw geocoding response bodies.
How:   A dict of URL → CacheEntry guarded by a reader/writer lock. Entries
       expire against an injectable clock; a write counter triggers a full
       sweep of expired entries on every Nth write.
Who:   Owned by GeoService; one instance per process, built in the lifespan.

Key semantics:
    The key is the outbound URL, byte for byte. Two queries that differ only
    in parameter order or whitespace are cached separately.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, Tuple

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class ReadWriteLock:
    """
    Reader/writer lock built on a single condition variable.

    Any number of readers may hold the lock together; a writer holds it
    alone. Waiting writers block new readers so a steady stream of lookups
    cannot starve a store.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


@dataclass(frozen=True)
class CacheEntry:
    """A cached response body and the clock value at which it stops being served."""

    body: bytes
    expires_at: float

    def is_fresh(self, now: float) -> bool:
        return now < self.expires_at


class GeoCache:
    """
    TTL cache keyed by full upstream URL.

    Args:
        clock: Returns the current time in seconds. Defaults to time.time;
               tests pass a fake clock to move time deterministically.
        sweep_every: Run sweep_expired() on every Nth store().
    """

    def __init__(self, clock: Optional[Clock] = None, sweep_every: int = 50):
        if sweep_every < 1:
            raise ValueError("sweep_every must be >= 1")
        self._clock = clock or time.time
        self._sweep_every = sweep_every
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = ReadWriteLock()
        self._writes = 0

    def lookup(self, key: str) -> Tuple[Optional[bytes], bool]:
        """
        Return (body, True) for a fresh entry, otherwise (None, False).

        Expired entries are reported as missing but left in place for the
        next sweep; lookups never take the write lock.
        """
        with self._lock.read_locked():
            entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None, False
        return entry.body, True

    def store(self, key: str, body: bytes, ttl: float) -> None:
        """
        Insert or overwrite `key` with an expiry of now + ttl seconds.

        The sweep, when due, runs after the write lock has been released and
        re-acquires it on its own.
        """
        with self._lock.write_locked():
            self._entries[key] = CacheEntry(body=bytes(body), expires_at=self._clock() + ttl)
            self._writes += 1
            sweep_due = self._writes % self._sweep_every == 0

        if sweep_due:
            self.sweep_expired()

    def sweep_expired(self) -> int:
        """Remove every entry whose expiry has passed. Returns the number removed."""
        with self._lock.write_locked():
            now = self._clock()
            expired = [k for k, e in self._entries.items() if not e.is_fresh(now)]
            for k in expired:
                del self._entries[k]

        if expired:
            logger.debug("Geo cache sweep removed %d expired entries", len(expired))
        return len(expired)

    @property
    def sweep_every(self) -> int:
        return self._sweep_every

    @property
    def write_count(self) -> int:
        with self._lock.read_locked():
            return self._writes

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._entries)
