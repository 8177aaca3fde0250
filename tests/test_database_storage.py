"""Tests for the relational store on SQLite (same upsert path as PostgreSQL)."""

import asyncio

import pytest
from sqlalchemy import insert
from sqlalchemy.exc import DataError

from collector.core.database import DatabaseStorage, metrics_table, normalize_dsn
from shared.errors import MetricParseError, MetricStoreError, UnsupportedOperationError
from shared.schemas import INT64_MAX, CounterMetric, GaugeMetric


@pytest.mark.asyncio
async def test_gauge_is_last_write_wins(db_storage):
    await db_storage.store(GaugeMetric(id="Alloc", value=120.5))
    await db_storage.store(GaugeMetric(id="Alloc", value=88.0))

    assert await db_storage.load("gauge", "Alloc") == GaugeMetric(id="Alloc", value=88.0)


@pytest.mark.asyncio
async def test_counter_accumulates(db_storage):
    for _ in range(3):
        await db_storage.store(CounterMetric(id="PollCount", delta=1))

    assert await db_storage.load("counter", "PollCount") == CounterMetric(id="PollCount", delta=3)


@pytest.mark.asyncio
async def test_concurrent_first_increments_are_both_counted(db_storage):
    await asyncio.gather(
        db_storage.store(CounterMetric(id="Requests", delta=5)),
        db_storage.store(CounterMetric(id="Requests", delta=5)),
    )

    assert (await db_storage.load("counter", "Requests")).delta == 10


@pytest.mark.asyncio
async def test_many_concurrent_increments(db_storage):
    await asyncio.gather(
        *(db_storage.store(CounterMetric(id="Hits", delta=1)) for _ in range(20))
    )

    assert (await db_storage.load("counter", "Hits")).delta == 20


@pytest.mark.asyncio
async def test_load_missing_returns_none(db_storage):
    assert await db_storage.load("gauge", "Alloc") is None


@pytest.mark.asyncio
async def test_store_metrics_commits_whole_batch(db_storage):
    await db_storage.store_metrics(
        [
            GaugeMetric(id="Alloc", value=1.0),
            CounterMetric(id="PollCount", delta=2),
            CounterMetric(id="PollCount", delta=3),
        ]
    )

    assert await db_storage.load_all() == {
        "gauge": {"Alloc": GaugeMetric(id="Alloc", value=1.0)},
        "counter": {"PollCount": CounterMetric(id="PollCount", delta=5)},
    }


@pytest.mark.asyncio
async def test_store_metrics_rolls_back_on_invalid_metric(db_storage):
    batch = [
        CounterMetric(id="PollCount", delta=1),
        CounterMetric.model_construct(id="Broken", delta=None),
        GaugeMetric(id="Alloc", value=2.0),
    ]

    with pytest.raises(MetricParseError):
        await db_storage.store_metrics(batch)

    assert await db_storage.load_all() == {}


@pytest.mark.asyncio
async def test_rollback_keeps_previous_values(db_storage):
    await db_storage.store(CounterMetric(id="PollCount", delta=7))

    with pytest.raises(MetricParseError):
        await db_storage.store_metrics(
            [CounterMetric(id="PollCount", delta=1), GaugeMetric.model_construct(id="Bad", value=None)]
        )

    assert (await db_storage.load("counter", "PollCount")).delta == 7


@pytest.mark.asyncio
async def test_store_metrics_with_empty_batch(db_storage):
    await db_storage.store_metrics([])
    assert await db_storage.load_all() == {}


@pytest.mark.asyncio
async def test_snapshot_operations_are_unsupported(db_storage):
    with pytest.raises(UnsupportedOperationError):
        await db_storage.write_to_file()
    with pytest.raises(UnsupportedOperationError):
        await db_storage.restore_from_file()


@pytest.mark.asyncio
async def test_inconsistent_row_is_a_store_error(db_storage):
    async with db_storage.engine.begin() as conn:
        await conn.execute(insert(metrics_table).values(id="Odd", type="counter", value=1.0))

    with pytest.raises(MetricStoreError):
        await db_storage.load("counter", "Odd")


@pytest.mark.asyncio
async def test_ping(db_storage):
    assert await db_storage.ping() is True


@pytest.mark.asyncio
async def test_unreachable_database_fails_cleanly(tmp_path):
    storage = DatabaseStorage.from_dsn(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'metrics.db'}")

    with pytest.raises(MetricStoreError):
        await storage.store(GaugeMetric(id="Alloc", value=1.0))
    assert await storage.ping() is False
    await storage.close()


def test_normalize_dsn():
    assert normalize_dsn("postgres://u:p@db/metrics") == "postgresql+asyncpg://u:p@db/metrics"
    assert normalize_dsn("postgresql://u:p@db/metrics") == "postgresql+asyncpg://u:p@db/metrics"
    assert normalize_dsn("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"


@pytest.mark.asyncio
async def test_backend_error_text_stays_out_of_message(tmp_path):
    storage = DatabaseStorage.from_dsn(f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'metrics.db'}")

    with pytest.raises(MetricStoreError) as excinfo:
        await storage.store(GaugeMetric(id="Alloc", value=1.0))

    assert excinfo.value.message == "Failed to store metrics"
    assert excinfo.value.details == {"operation": "store", "count": 1}
    assert "sqlite" not in excinfo.value.message.lower()
    assert excinfo.value.__cause__ is not None
    await storage.close()


@pytest.mark.asyncio
async def test_out_of_range_value_is_not_retryable(db_storage, monkeypatch):
    await db_storage.store(CounterMetric(id="PollCount", delta=1))

    def overflowing_upsert(self, metric):
        raise DataError("UPDATE metrics", {}, Exception("bigint out of range"))

    monkeypatch.setattr(DatabaseStorage, "_upsert", overflowing_upsert)

    with pytest.raises(MetricParseError) as excinfo:
        await db_storage.store(CounterMetric(id="PollCount", delta=INT64_MAX))

    assert excinfo.value.retryable is False
    assert excinfo.value.status_code == 400
    assert "bigint" not in excinfo.value.message
    monkeypatch.undo()
    assert await db_storage.load("counter", "PollCount") == CounterMetric(id="PollCount", delta=1)
