"""Transaction runner with bounded retry on serialization conflicts.

Every balance- or attendance-mutating operation runs through
``run_in_transaction``: a fresh session, one transaction, commit on success.
Serialization failures, deadlocks and lock timeouts roll back and re-run the
whole operation; exhausting the attempts raises ``ConcurrencyError``.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staffhub.common.exceptions import ConcurrencyError, DatabaseUnavailableError
from staffhub.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected, lock_not_available
RETRYABLE_SQLSTATES = frozenset({"40001", "40P01", "55P03"})


def _sqlstate(exc: DBAPIError) -> Optional[str]:
    orig = exc.orig
    for attr in ("pgcode", "sqlstate"):
        code = getattr(orig, attr, None)
        if code:
            return str(code)
    return None


def is_retryable(exc: DBAPIError) -> bool:
    """Serialization failure, deadlock, lock timeout or SQLite lock contention."""
    if _sqlstate(exc) in RETRYABLE_SQLSTATES:
        return True
    return isinstance(exc, OperationalError) and "database is locked" in str(exc.orig)


def is_unavailable(exc: DBAPIError) -> bool:
    if exc.connection_invalidated or isinstance(exc, InterfaceError):
        return True
    if isinstance(exc, OperationalError):
        state = _sqlstate(exc)
        # class 08: connection exception, 57P0x: server shutting down
        return state is None or state.startswith("08") or state.startswith("57P")
    return False


async def run_in_transaction(
    session_factory: async_sessionmaker[AsyncSession],
    operation: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: Optional[int] = None,
    **kwargs: Any,
) -> T:
    """Run ``operation(session, *args, **kwargs)`` atomically, retrying on conflict."""

    attempts = max_attempts or settings.TX_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            async with session_factory() as session:
                async with session.begin():
                    return await operation(session, *args, **kwargs)
        except DBAPIError as exc:
            if is_retryable(exc):
                logger.warning(
                    "%s conflicted (attempt %d/%d): %s",
                    getattr(operation, "__qualname__", operation), attempt, attempts, exc.orig,
                )
                continue
            if is_unavailable(exc):
                logger.error("Database unavailable: %s", exc.orig)
                raise DatabaseUnavailableError() from exc
            raise
        except (ConnectionError, OSError) as exc:
            logger.error("Database unreachable: %s", exc)
            raise DatabaseUnavailableError() from exc

    raise ConcurrencyError(attempts)
