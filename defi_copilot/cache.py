import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional


Clock = Callable[[], float]


@dataclass
class CacheEntry:
    value: Any
    stored_at: float
    expires_at: float


class TTLCache:
    """In-memory TTL cache with LRU eviction.

    Entries may carry their own TTL. The clock is injectable so expiry can be
    exercised without sleeping.
    """

    def __init__(self, default_ttl: float = 300, max_size: int = 1000, clock: Optional[Clock] = None):
        self.default_ttl = default_ttl
        self.max_size = max_size
        self._clock: Clock = clock or time.monotonic
        self._cache: Dict[str, CacheEntry] = {}
        self._access_order: List[str] = []

    def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            return None

        if self._clock() >= entry.expires_at:
            self._evict(key)
            return None

        # Update access order for LRU
        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()

        self._cache[key] = CacheEntry(value=value, stored_at=now, expires_at=now + ttl)

        if key in self._access_order:
            self._access_order.remove(key)
        self._access_order.append(key)

        while len(self._cache) > self.max_size:
            oldest_key = self._access_order.pop(0)
            self._cache.pop(oldest_key, None)

    def clear(self) -> None:
        self._cache.clear()
        self._access_order.clear()

    def size(self) -> int:
        return len(self._cache)

    def stats(self) -> Dict[str, Any]:
        """Return size and the age bounds of what is currently stored."""
        stored = [entry.stored_at for entry in self._cache.values()]
        return {
            "size": len(stored),
            "oldest_entry": min(stored) if stored else None,
            "newest_entry": max(stored) if stored else None,
        }

    def _evict(self, key: str) -> None:
        self._cache.pop(key, None)
        if key in self._access_order:
            self._access_order.remove(key)


def cache_key(endpoint: str, params: Optional[Dict[str, Any]] = None) -> str:
    """Build a stable key from an endpoint and its parameters."""
    if not params:
        return endpoint
    encoded = "&".join(f"{name}={params[name]}" for name in sorted(params))
    return f"{endpoint}?{encoded}"


__all__ = ["TTLCache", "CacheEntry", "cache_key"]
