"""Balance cache collaborator for read-only paid-leave lookups.

The cache is injected, never module-global: ``create_app`` builds one per
application and routers receive it through ``get_balance_cache``. Code that
decides whether a request can be paid must not consult it.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional, Protocol

from fastapi import Request

from staffhub.config import settings

logger = logging.getLogger(__name__)


class BalanceCache(Protocol):
    """Minimal key/value cache with per-entry TTL."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any, ttl: float) -> None: ...

    def invalidate(self, key: str) -> None: ...

    def clear(self) -> None: ...


class TTLBalanceCache:
    """In-process cache; entries expire ``ttl`` seconds after being set."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return None
            return value

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def invalidate(self, key: str) -> None:
        with self._lock:
            if self._entries.pop(key, None) is not None:
                logger.debug("Balance cache invalidated for %s", key)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class NullBalanceCache:
    """Cache that never stores anything (caching disabled)."""

    def get(self, key: str) -> Optional[Any]:
        return None

    def set(self, key: str, value: Any, ttl: float) -> None:
        return None

    def invalidate(self, key: str) -> None:
        return None

    def clear(self) -> None:
        return None


def paid_leave_cache_key(employee_id: Any) -> str:
    return f"paid_leave:{employee_id}"


def build_balance_cache() -> BalanceCache:
    """Build the cache configured by settings."""
    if settings.BALANCE_CACHE_ENABLED:
        return TTLBalanceCache()
    return NullBalanceCache()


def get_balance_cache(request: Request) -> BalanceCache:
    """FastAPI dependency: the application's balance cache."""
    return request.app.state.balance_cache
