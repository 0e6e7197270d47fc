"""Shared fixtures: test environment, in-memory SQLite database, scripted generator."""

from __future__ import annotations

import os

os.environ.setdefault("SECRET", "storyseed-test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ["APP_ENV"] = "test"
os.environ["EMAIL_TRANSPORT"] = "dummy"
os.environ["MAGIC_LINK_SECRET"] = "storyseed-test-magic"
os.environ["OPENAI_API_KEY"] = "sk-test"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from storyseed import models  # noqa: F401  registers tables
from storyseed.database import Base

from factories import ScriptedGenerator


# -- database ----------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def generator():
    return ScriptedGenerator()
