"""Shared test fixtures."""

from __future__ import annotations

import itertools
import time
from collections.abc import AsyncGenerator, AsyncIterator, Awaitable, Callable, Iterator
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from harambee.auth.jwt import create_access_token
from harambee.auth.service import register_user
from harambee.database import close_db, get_engine, get_session, init_db
from harambee.db import models  # noqa: F401
from harambee.db.base import Base
from harambee.main import create_app
from harambee.redis_client import use_redis

TEST_PASSWORD = "Harambee2024"


class MemoryRedis:
    """In-process stand-in for the handful of redis commands the app issues."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.expires_at: dict[str, float] = {}

    def _purge(self, key: str) -> None:
        deadline = self.expires_at.get(key)
        if deadline is not None and deadline <= time.monotonic():
            self.store.pop(key, None)
            self.expires_at.pop(key, None)

    async def get(self, key: str) -> str | None:
        self._purge(key)
        return self.store.get(key)

    async def set(self, key: str, value: Any, ex: int | None = None) -> bool:
        self.store[key] = str(value)
        if ex is not None:
            self.expires_at[key] = time.monotonic() + ex
        else:
            self.expires_at.pop(key, None)
        return True

    async def incr(self, key: str) -> int:
        self._purge(key)
        value = int(self.store.get(key, "0")) + 1
        self.store[key] = str(value)
        return value

    async def expire(self, key: str, seconds: int) -> bool:
        if key not in self.store:
            return False
        self.expires_at[key] = time.monotonic() + seconds
        return True

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
            self.expires_at.pop(key, None)
        return removed

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.store.clear()

    def pipeline(self) -> _MemoryPipeline:
        return _MemoryPipeline(self)


class _MemoryPipeline:
    def __init__(self, redis: MemoryRedis) -> None:
        self._redis = redis
        self._calls: list[tuple[str, tuple[Any, ...]]] = []

    def incr(self, key: str) -> _MemoryPipeline:
        self._calls.append(("incr", (key,)))
        return self

    def expire(self, key: str, seconds: int) -> _MemoryPipeline:
        self._calls.append(("expire", (key, seconds)))
        return self

    async def execute(self) -> list[Any]:
        results = [await getattr(self._redis, name)(*args) for name, args in self._calls]
        self._calls.clear()
        return results


@dataclass
class Account:
    id: int
    name: str
    email: str
    role: str
    headers: dict[str, str]


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One session for seeding or asserting; commits on success."""
    sessions = get_session()
    session = await anext(sessions)
    try:
        yield session
        await session.commit()
    finally:
        await sessions.aclose()


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[None, None]:
    """Fresh SQLite file per test, schema built from the ORM metadata."""
    await init_db(f"sqlite+aiosqlite:///{tmp_path / 'harambee.db'}")
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await close_db()


@pytest.fixture
def memory_redis() -> Iterator[MemoryRedis]:
    redis = MemoryRedis()
    use_redis(redis)  # type: ignore[arg-type]
    yield redis
    use_redis(None)


@pytest_asyncio.fixture
async def db_session(database: None) -> AsyncGenerator[AsyncSession, None]:
    """Direct session for service-level tests (never shared with the HTTP client)."""
    sessions = get_session()
    session = await anext(sessions)
    yield session
    await session.rollback()
    await sessions.aclose()


@pytest_asyncio.fixture
async def client(database: None, memory_redis: MemoryRedis) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client wired straight into the app."""
    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def sessions(database: None) -> Callable[[], AbstractAsyncContextManager[AsyncSession]]:
    """Open independent sessions, e.g. two stale views of the same row."""
    return session_scope


@pytest_asyncio.fixture
async def make_user(database: None) -> Callable[..., Awaitable[Account]]:
    """Factory: ``await make_user("Amina", role="admin")`` returns an Account with auth headers."""
    counter = itertools.count(1)

    async def _make(name: str | None = None, role: str = "user") -> Account:
        n = next(counter)
        name = name or f"User {n}"
        email = f"{name.lower().replace(' ', '.')}.{n}@example.com"
        async with session_scope() as db:
            user = await register_user(db, name, email, TEST_PASSWORD)
            user.role = role
            user_id = user.id
        token = create_access_token(user_id, email, role)
        return Account(id=user_id, name=name, email=email, role=role, headers={"Authorization": f"Bearer {token}"})

    return _make


@pytest_asyncio.fixture
async def admin(make_user: Callable[..., Awaitable[Account]]) -> Account:
    return await make_user("Site Admin", role="admin")


async def create_approved_club(client: AsyncClient, owner: Account, admin: Account, name: str = "Chess Club") -> int:
    response = await client.post("/api/clubs", json={"name": name, "category": "games"}, headers=owner.headers)
    assert response.status_code == 201, response.text
    club_id = response.json()["data"]["id"]
    response = await client.post(
        f"/api/admin/clubs/{club_id}/approval", json={"action": "approve"}, headers=admin.headers
    )
    assert response.status_code == 200, response.text
    return club_id


async def add_member(client: AsyncClient, club_id: int, member: Account, manager: Account) -> None:
    response = await client.post(f"/api/clubs/{club_id}/join", json={}, headers=member.headers)
    assert response.status_code == 201, response.text
    request_id = response.json()["data"]["id"]
    response = await client.post(
        f"/api/clubs/{club_id}/join-requests/{request_id}", json={"action": "approve"}, headers=manager.headers
    )
    assert response.status_code == 200, response.text


@pytest.fixture
def club_helpers() -> Any:
    """Expose the club set-up helpers to test modules."""

    class _Helpers:
        approved_club = staticmethod(create_approved_club)
        join = staticmethod(add_member)

    return _Helpers
