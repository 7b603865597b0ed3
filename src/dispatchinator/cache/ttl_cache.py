"""Thread-safe in-memory key/value store with per-entry expiration.

Readers never mutate the map: an expired entry is simply invisible to
``get()`` until a writer (the background sweeper, ``set`` or ``delete``)
reclaims it.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, Tuple, TypeVar

from ..logging import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


class ReadWriteLock:
    """Writer-preferring reader/writer lock.

    Any number of readers may hold the lock at once; a writer holds it
    exclusively. Once a writer is waiting, new readers queue behind it.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    def read_locked(self) -> "_Guard":
        return _Guard(self.acquire_read, self.release_read)

    def write_locked(self) -> "_Guard":
        return _Guard(self.acquire_write, self.release_write)


class _Guard:
    def __init__(self, acquire: Callable[[], None], release: Callable[[], None]):
        self._acquire = acquire
        self._release = release

    def __enter__(self):
        self._acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self._release()
        return False


@dataclass
class CacheEntry(Generic[V]):
    value: V
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


class TTLCache(Generic[V]):
    """Key/value store with per-entry TTL and a periodic sweeper thread.

    The sweeper is started at construction and runs until ``close()``.

    Args:
        default_ttl: TTL in seconds used by ``set()``
        sweep_interval: Seconds between sweeps of expired entries
        clock: Monotonic time source (injectable for tests)
        start_sweeper: Start the background sweeper thread
    """

    DEFAULT_TTL = 10 * 60.0
    DEFAULT_SWEEP_INTERVAL = 5 * 60.0

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        start_sweeper: bool = True,
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be positive")
        self.default_ttl = default_ttl
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}
        self._lock = ReadWriteLock()
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        if start_sweeper:
            self._start_sweeper()

    def _start_sweeper(self) -> None:
        self._sweeper = threading.Thread(
            target=self._sweep_loop,
            name="ttl-cache-sweeper",
            daemon=True,
        )
        self._sweeper.start()
        logger.debug(f"Cache sweeper started (interval={self.sweep_interval}s)")

    def _sweep_loop(self) -> None:
        while not self._stop.wait(self.sweep_interval):
            try:
                removed = self.sweep()
                if removed:
                    logger.debug(f"Cache sweep removed {removed} expired entries")
            except Exception as e:
                logger.warning(f"Cache sweep failed: {e}")

    def set(self, key: str, value: V) -> None:
        self.set_with_ttl(key, value, self.default_ttl)

    def set_with_ttl(self, key: str, value: V, ttl: float) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive")
        with self._lock.write_locked():
            self._entries[key] = CacheEntry(value, self._clock() + ttl)

    def get(self, key: str) -> Tuple[Optional[V], bool]:
        """Look up ``key``.

        Returns:
            ``(value, True)`` for a live entry, ``(None, False)`` when the key
            is missing or expired. Expired entries are left for the sweeper.
        """
        with self._lock.read_locked():
            entry = self._entries.get(key)
            if entry is None or entry.is_expired(self._clock()):
                return None, False
            return entry.value, True

    def delete(self, key: str) -> None:
        with self._lock.write_locked():
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock.write_locked():
            self._entries.clear()

    def size(self) -> int:
        """Number of stored entries, including expired ones not yet swept."""
        with self._lock.read_locked():
            return len(self._entries)

    def sweep(self) -> int:
        """Remove every expired entry and return how many were removed."""
        with self._lock.write_locked():
            now = self._clock()
            expired = [k for k, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def close(self) -> None:
        """Stop the sweeper thread and wait for it to exit."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=5)
            self._sweeper = None
            logger.debug("Cache sweeper stopped")

    def __len__(self) -> int:
        return self.size()
