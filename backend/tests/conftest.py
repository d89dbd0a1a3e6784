"""
Pytest configuration and fixtures for backend tests.

This file provides common fixtures used across all backend tests.
"""

import asyncio
import shutil
import sys
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from codecollab.core.config import settings
from codecollab.core.database import Base
from codecollab.models import DownloadEvent  # noqa: F401
from codecollab.schemas.execution import MessageType


requires_node = pytest.mark.skipif(shutil.which("node") is None, reason="node not installed")
requires_gcc = pytest.mark.skipif(shutil.which("gcc") is None, reason="gcc not installed")
requires_gxx = pytest.mark.skipif(shutil.which("g++") is None, reason="g++ not installed")
requires_javac = pytest.mark.skipif(shutil.which("javac") is None, reason="javac not installed")


@pytest.fixture
def toolchain(tmp_path, monkeypatch):
    """Point the runner at a private scratch dir and this interpreter."""
    scratch = tmp_path / "scratch"
    scratch.mkdir()
    monkeypatch.setattr(settings, "SCRATCH_DIR", str(scratch))
    monkeypatch.setattr(settings, "PYTHON_BIN", sys.executable)
    return scratch


@pytest.fixture
async def test_db_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
async def db_session(test_db_engine):
    """Create a test database session."""
    session_factory = async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_websocket():
    """Create a mock WebSocket connection."""
    websocket = AsyncMock()
    websocket.send_json = AsyncMock()
    websocket.send_text = AsyncMock()
    websocket.close = AsyncMock()
    return websocket


async def collect_until_done(channel, timeout: float = 15.0):
    """Read events from a channel up to and including the next done event."""
    events = []

    async def _collect():
        while True:
            event = await channel.get()
            if event is None:
                return
            events.append(event)
            if event.type == MessageType.DONE:
                return

    await asyncio.wait_for(_collect(), timeout)
    return events


def joined_text(events, kind=MessageType.OUTPUT) -> str:
    """Concatenate the data of all events of one kind."""
    return "".join(e.data for e in events if e.type == kind)
