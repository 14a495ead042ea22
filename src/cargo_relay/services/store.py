"""Keyed in-memory store with per-entry expiry."""

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from cargo_relay.services.clock import Clock, SystemClock

K = TypeVar("K")
V = TypeVar("V")


@dataclass
class _StoreEntry(Generic[V]):
    value: V
    expires_at: datetime


class ExpiringStore(Generic[K, V]):
    """Thread-safe map whose entries disappear after a TTL.

    Expired entries are dropped lazily on access and in bulk by `evict`.
    `on_expire` is invoked (outside the lock) for each entry dropped because
    its TTL elapsed, never for entries removed by `consume` or `discard`.
    """

    def __init__(
        self,
        ttl_seconds: float,
        clock: Clock | None = None,
        on_expire: Callable[[K, V], None] | None = None,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or SystemClock()
        self._on_expire = on_expire
        self._entries: dict[K, _StoreEntry[V]] = {}
        self._lock = threading.Lock()

    def put(self, key: K, value: V, ttl_seconds: float | None = None) -> datetime:
        """Store a value and return its expiry time."""
        ttl = self._ttl if ttl_seconds is None else timedelta(seconds=ttl_seconds)
        expires_at = self._clock.now() + ttl
        with self._lock:
            self._entries[key] = _StoreEntry(value=value, expires_at=expires_at)
        return expires_at

    def get(self, key: K) -> V | None:
        """Return a live value without removing it."""
        expired: V | None = None
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock.now() < entry.expires_at:
                return entry.value
            del self._entries[key]
            expired = entry.value
        self._notify_expired([(key, expired)])
        return None

    def consume(self, key: K) -> V | None:
        """Atomically remove and return a live value."""
        expired: V | None = None
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return None
            if self._clock.now() < entry.expires_at:
                return entry.value
            expired = entry.value
        self._notify_expired([(key, expired)])
        return None

    def discard(self, key: K) -> bool:
        """Remove a key regardless of expiry; return whether it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def evict(self) -> int:
        """Drop every expired entry and return how many were dropped."""
        now = self._clock.now()
        with self._lock:
            expired = [
                (key, entry.value)
                for key, entry in self._entries.items()
                if now >= entry.expires_at
            ]
            for key, _ in expired:
                del self._entries[key]
        self._notify_expired(expired)
        return len(expired)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _notify_expired(self, expired: list[tuple[K, V]]) -> None:
        if self._on_expire is None:
            return
        for key, value in expired:
            self._on_expire(key, value)
