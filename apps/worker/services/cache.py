"""
TTL cache for sync results.
"""
from __future__ import annotations

import time
from typing import Any, Callable, Optional


class CacheService:
    def __init__(self, default_ttl: float = 300.0, clock: Callable[[], float] = time.time):
        self.default_ttl = default_ttl
        self._clock = clock
        self._store: dict[str, tuple[float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        item = self._store.get(key)
        if item is None:
            return None
        expires_at, value = item
        if self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        self._store[key] = (self._clock() + (self.default_ttl if ttl is None else ttl), value)


def sync_cache_key(patient_id: str) -> str:
    return f"emr-sync:{patient_id}"
