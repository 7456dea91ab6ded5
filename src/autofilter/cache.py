"""Time-bounded key/value store."""

from typing import Generic, Hashable, TypeVar

from autofilter.clock import Clock, SystemClock

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class ExpiringCache(Generic[K, V]):
    """Values expire ``ttl`` seconds after they were set.

    Expired entries are invisible to ``get`` and are removed by ``sweep``.
    """

    def __init__(self, ttl: float, clock: Clock | None = None, max_entries: int = 256) -> None:
        self.ttl = ttl
        self.clock = clock or SystemClock()
        self.max_entries = max_entries
        self._entries: dict[K, tuple[float, V]] = {}

    def get(self, key: K) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at <= self.clock.now():
            del self._entries[key]
            return None
        return value

    def set(self, key: K, value: V) -> None:
        if key not in self._entries and len(self._entries) >= self.max_entries:
            self.sweep()
            if len(self._entries) >= self.max_entries:
                # Drop the entry closest to expiry
                oldest = min(self._entries, key=lambda k: self._entries[k][0])
                del self._entries[oldest]
        self._entries[key] = (self.clock.now() + self.ttl, value)

    def sweep(self) -> int:
        """Remove expired entries; returns how many were dropped."""
        now = self.clock.now()
        expired = [key for key, (expires_at, _) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return self.get(key) is not None  # type: ignore[arg-type]
