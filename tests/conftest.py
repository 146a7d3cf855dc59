"""Shared test fixtures — async DB, client, factories.

Reusable across all test modules (leave, attendance, common).
Uses SQLite + aiosqlite for fast isolated tests without PostgreSQL; the
engine itself lives in ``tests.support``.
"""

from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from staffhub.database import Base, get_db, get_session_factory
from staffhub.main import create_app
from tests.support import TestSessionFactory, engine


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create all tables before each test, drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture(autouse=True)
def _reset_rate_limiter():
    """Reset rate limiter storage between tests to prevent cross-test interference."""
    from staffhub.common.rate_limit import limiter

    limiter.reset()
    yield


async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


def _override_get_session_factory() -> async_sessionmaker[AsyncSession]:
    return TestSessionFactory


# ── FastAPI test client ─────────────────────────────────────────────

@pytest.fixture
async def app():
    """Create a fresh app instance with DB dependencies overridden."""
    application = create_app()
    application.dependency_overrides[get_db] = _override_get_db
    application.dependency_overrides[get_session_factory] = _override_get_session_factory
    yield application
    application.dependency_overrides.clear()


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired to the test app."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


# ── Database session (for direct DB operations in tests) ────────────

@pytest.fixture
async def db() -> AsyncGenerator[AsyncSession, None]:
    async with TestSessionFactory() as session:
        yield session
        await session.commit()


# ── Model factories ─────────────────────────────────────────────────

def _make_employee(
    *,
    email: str | None = None,
    first_name: str = "Test",
    last_name: str = "User",
    join_date: date = date(2024, 1, 1),
    department: str | None = None,
) -> dict:
    code = f"SH-{uuid.uuid4().hex[:6].upper()}"
    return dict(
        employee_code=code,
        first_name=first_name,
        last_name=last_name,
        email=email or f"{code.lower()}@staffhub.dev",
        join_date=join_date,
        department=department,
    )


async def _seed_employee(
    db: AsyncSession,
    *,
    balances: dict[str, Decimal] | None = None,
    **kwargs,
):
    """Create an employee through the service, optionally overriding buckets."""
    from staffhub.core_hr.schemas import EmployeeCreate
    from staffhub.core_hr.service import EmployeeService

    employee = await EmployeeService.create_employee(db, EmployeeCreate(**_make_employee(**kwargs)))
    for bucket, value in (balances or {}).items():
        employee.leave_balance.set_bucket(bucket, value)
    await db.commit()
    return employee


@pytest.fixture
async def test_employee(db):
    """Employee who joined 2024-01-01 with default buckets."""
    return await _seed_employee(db)
