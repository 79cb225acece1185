"""Shared fixtures for davfs tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from davfs.fs.database_fs import DatabaseFileSystem
from davfs.fs.local_disk import LocalDiskFileSystem
from davfs.fs.types import RequestContext

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


@pytest.fixture
def disk(tmp_path: Path) -> LocalDiskFileSystem:
    """LocalDiskFileSystem rooted at a temporary directory."""
    return LocalDiskFileSystem(tmp_path)


@pytest.fixture
def ctx() -> RequestContext:
    """Session-less context for path-based backends."""
    return RequestContext()


@pytest.fixture
async def async_engine() -> AsyncIterator[AsyncEngine]:
    """Async in-memory SQLite engine with all tables created."""
    eng = create_async_engine("sqlite+aiosqlite://", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def async_session(async_engine: AsyncEngine) -> AsyncIterator[AsyncSession]:
    """Async SQLModel session on the in-memory engine."""
    factory = async_sessionmaker(
        async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )
    async with factory() as session:
        yield session


@pytest.fixture
def db() -> DatabaseFileSystem:
    return DatabaseFileSystem()


@pytest.fixture
def db_ctx(async_session: AsyncSession) -> RequestContext:
    """Context carrying the test session."""
    return RequestContext(session=async_session)
