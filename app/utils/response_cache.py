"""TTL response cache for the live insights overview.

One instance per process, created in the app lifespan and stored on
``app.state.response_cache``:

    cache = request.app.state.response_cache
    cache_key = f"overview:{cafe_id}:{window_days}"
    cached = cache.get(cache_key)
    if cached:
        return cached
    result = service.get_overview(cafe_id, window_days)
    cache.set(cache_key, result)
"""
import threading
import time
from typing import Any, Callable, Optional


class ResponseCache:
    """Thread-safe in-memory cache with TTL expiry and max-entry limit."""

    def __init__(self, max_entries: int = 200, default_ttl: int = 120, clock: Callable[[], float] = time.time):
        self._store: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._max_entries = max(1, max_entries)
        self._default_ttl = default_ttl
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self._default_ttl if ttl is None else ttl
        if ttl <= 0:
            return
        with self._lock:
            # Evict expired entries first to stay under limit
            if len(self._store) >= self._max_entries and key not in self._store:
                now = self._clock()
                expired = [k for k, (exp, _) in self._store.items() if now > exp]
                for k in expired:
                    del self._store[k]
            # If still at limit, evict the entry closest to expiry
            if len(self._store) >= self._max_entries and key not in self._store:
                oldest_key = min(self._store, key=lambda k: self._store[k][0])
                del self._store[oldest_key]
            self._store[key] = (self._clock() + ttl, value)

    def clear(self) -> None:
        with self._lock:
            self._store.clear()

    def invalidate(self, prefix: str) -> int:
        """Remove all keys starting with prefix. Returns count removed."""
        with self._lock:
            keys = [k for k in self._store if k.startswith(prefix)]
            for k in keys:
                del self._store[k]
            return len(keys)
