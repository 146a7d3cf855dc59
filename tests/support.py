"""Test database wiring shared by conftest and the test modules.

Lives outside ``conftest.py`` so that every importer gets the same engine:
pytest loads ``conftest.py`` under its own module name, and a second
``from tests.conftest import ...`` would build a second, empty database.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

from sqlalchemy import event
from sqlalchemy.dialects.postgresql import JSONB, UUID as PG_UUID
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.pool import StaticPool

# Import ALL model modules so SQLAlchemy can resolve cross-module relationships
# (e.g. Employee → LeaveBalance, AttendanceRecord, etc.)
import staffhub.common.audit  # noqa: F401
import staffhub.core_hr.models  # noqa: F401
import staffhub.leave.models  # noqa: F401
import staffhub.attendance.models  # noqa: F401


# ── SQLite compat: compile PG-specific types to TEXT/CHAR ───────────

@compiles(JSONB, "sqlite")
def _jsonb_sqlite(element, compiler, **kw):
    return "TEXT"


@compiles(PG_UUID, "sqlite")
def _uuid_sqlite(element, compiler, **kw):
    return "CHAR(36)"


# ── Test database (SQLite in-memory) ────────────────────────────────

TEST_DATABASE_URL = "sqlite+aiosqlite://"

engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionFactory = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False,
)


# ── File-backed database for concurrent sessions ────────────────────

def make_file_engine(path: Path) -> AsyncEngine:
    """SQLite file engine whose transactions take the write lock up front.

    Each pooled connection is its own SQLite connection, so concurrent
    sessions really interleave. ``BEGIN IMMEDIATE`` makes a second writer
    wait until the first commits, the way the balance row lock does on
    PostgreSQL.
    """
    file_engine = create_async_engine(f"sqlite+aiosqlite:///{path}", echo=False)

    @event.listens_for(file_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(file_engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    return file_engine


# ── Time helpers ────────────────────────────────────────────────────

NY = ZoneInfo("America/New_York")


def ny(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Aware datetime in the reference zone."""
    return datetime(year, month, day, hour, minute, tzinfo=NY)


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=timezone.utc)
