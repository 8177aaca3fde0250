"""Shared fixtures for storage, repository and API tests."""

from __future__ import annotations

import pytest
import pytest_asyncio

from collector.core.database import DatabaseStorage
from collector.core.memory import InMemoryStorage


@pytest.fixture
def snapshot_path(tmp_path):
    return tmp_path / "metrics-db.json"


@pytest.fixture
def memory_storage(snapshot_path):
    """In-memory store with periodic (not write-through) snapshots."""
    return InMemoryStorage(file_path=snapshot_path, store_interval=300)


@pytest_asyncio.fixture
async def db_storage(tmp_path):
    """Relational store on a throwaway SQLite file."""
    storage = DatabaseStorage.from_dsn(f"sqlite+aiosqlite:///{tmp_path / 'metrics.db'}")
    await storage.create_schema()
    yield storage
    await storage.close()
