"""Relational metric storage backed by a single ``metrics`` table.

Every write runs inside one transaction and is expressed as an
``INSERT ... ON CONFLICT (id, type) DO UPDATE`` so that the uniqueness
constraint decides between insert and update. Counter accumulation happens
in the ``SET delta = delta + excluded.delta`` expression; the database row
lock taken by the upsert keeps concurrent increments from being lost.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError
from sqlalchemy import (
    BigInteger,
    Column,
    Double,
    MetaData,
    Table,
    Text,
    UniqueConstraint,
    func,
    select,
    text,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DataError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from shared.errors import MetricParseError, MetricStoreError, UnsupportedOperationError
from shared.metrics import group_metrics
from shared.schemas import (
    CounterMetric,
    GaugeMetric,
    MetricCollection,
    metric_adapter,
)

logger = logging.getLogger(__name__)

metadata = MetaData()

metrics_table = Table(
    "metrics",
    metadata,
    Column("id", Text, nullable=False),
    Column("type", Text, nullable=False),
    Column("delta", BigInteger, nullable=True),
    Column("value", Double, nullable=True),
    UniqueConstraint("id", "type", name="uq_metrics_id_type"),
)

_UPSERT_DIALECTS: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_BACKEND_ERRORS = (SQLAlchemyError, OSError)


def _store_error(message: str, exc: BaseException, **details: Any) -> MetricStoreError:
    # backend text stays in the log and the exception chain, never in the response
    logger.warning("%s: %s", message, exc)
    return MetricStoreError(message, details=details)


def normalize_dsn(dsn: str) -> str:
    """Point plain PostgreSQL URLs at the asyncpg driver."""
    for prefix in ("postgres://", "postgresql://"):
        if dsn.startswith(prefix):
            return "postgresql+asyncpg://" + dsn[len(prefix):]
    return dsn


@dataclass(slots=True)
class DatabaseStorage:
    """Concrete SQL implementation of the metrics storage port."""

    engine: AsyncEngine
    _insert: Callable[..., Any] = field(init=False)

    def __post_init__(self) -> None:
        dialect = self.engine.dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise UnsupportedOperationError(
                f"Database dialect {dialect!r} has no ON CONFLICT upsert support",
                details={"dialect": dialect},
            )
        self._insert = insert

    @classmethod
    def from_dsn(cls, dsn: str, echo: bool = False) -> DatabaseStorage:
        url = normalize_dsn(dsn)
        logger.info("Creating database engine for %s", url.split("@")[-1])
        return cls(create_async_engine(url, pool_pre_ping=True, echo=echo))

    async def create_schema(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(metadata.create_all)
        except _BACKEND_ERRORS as exc:
            raise _store_error("Failed to create metrics table", exc, operation="create_schema") from exc

    async def load(self, mtype: str, name: str) -> GaugeMetric | CounterMetric | None:
        stmt = self._select().where(
            metrics_table.c.type == mtype, metrics_table.c.id == name
        )
        try:
            async with self.engine.connect() as conn:
                row = (await conn.execute(stmt)).first()
        except _BACKEND_ERRORS as exc:
            raise _store_error(
                "Failed to load metric", exc, operation="load", type=mtype, id=name
            ) from exc
        if row is None:
            return None
        return self._metric_from_row(row._mapping)

    async def load_all(self) -> MetricCollection:
        try:
            async with self.engine.connect() as conn:
                rows = (await conn.execute(self._select())).all()
        except _BACKEND_ERRORS as exc:
            raise _store_error("Failed to load metrics", exc, operation="load_all") from exc
        return group_metrics(self._metric_from_row(row._mapping) for row in rows)

    async def store(self, metric: GaugeMetric | CounterMetric) -> None:
        await self._execute_upserts([metric], operation="store")

    async def store_metrics(self, metrics: list[GaugeMetric | CounterMetric]) -> None:
        # One transaction for the whole batch: either every metric commits or none.
        if not metrics:
            return
        await self._execute_upserts(metrics, operation="store_metrics")

    async def restore_from_file(self) -> bool:
        raise UnsupportedOperationError(
            "Snapshot restore is not supported when the database backend is enabled",
            details={"operation": "restore_from_file"},
        )

    async def write_to_file(self) -> None:
        raise UnsupportedOperationError(
            "Snapshot writes are not supported when the database backend is enabled",
            details={"operation": "write_to_file"},
        )

    async def ping(self) -> bool:
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except _BACKEND_ERRORS:
            logger.warning("Database ping failed", exc_info=True)
            return False
        return True

    async def close(self) -> None:
        await self.engine.dispose()

    async def _execute_upserts(
        self, metrics: list[GaugeMetric | CounterMetric], operation: str
    ) -> None:
        try:
            async with self.engine.begin() as conn:
                for metric in metrics:
                    await conn.execute(self._upsert(metric))
        except DataError as exc:
            # out-of-range values such as a BIGINT overflow never succeed on retry
            logger.warning("Rejected %s: %s", operation, exc)
            raise MetricParseError(
                "Metric value is out of range for the database",
                details={"operation": operation, "count": len(metrics)},
            ) from exc
        except _BACKEND_ERRORS as exc:
            raise _store_error(
                "Failed to store metrics", exc, operation=operation, count=len(metrics)
            ) from exc
        logger.debug("Committed %d metrics (%s)", len(metrics), operation)

    def _upsert(self, metric: GaugeMetric | CounterMetric):
        row = self._row_values(metric)
        stmt = self._insert(metrics_table).values(**row)
        if isinstance(metric, CounterMetric):
            update = {"delta": func.coalesce(metrics_table.c.delta, 0) + stmt.excluded.delta}
        else:
            update = {"value": stmt.excluded.value}
        return stmt.on_conflict_do_update(index_elements=["id", "type"], set_=update)

    @staticmethod
    def _row_values(metric: GaugeMetric | CounterMetric) -> dict[str, Any]:
        if isinstance(metric, CounterMetric) and isinstance(metric.delta, int):
            return {"id": metric.id, "type": metric.type, "delta": metric.delta, "value": None}
        if isinstance(metric, GaugeMetric) and isinstance(metric.value, (int, float)):
            return {"id": metric.id, "type": metric.type, "delta": None, "value": metric.value}
        raise MetricParseError(
            f"Metric {getattr(metric, 'id', '?')!r} has no value for its type",
            details={"type": getattr(metric, "type", None)},
        )

    @staticmethod
    def _select():
        return select(
            metrics_table.c.id,
            metrics_table.c.type,
            metrics_table.c.delta,
            metrics_table.c.value,
        )

    @staticmethod
    def _metric_from_row(row: Any) -> GaugeMetric | CounterMetric:
        payload = {key: value for key, value in row.items() if value is not None}
        try:
            return metric_adapter.validate_python(payload)
        except ValidationError as exc:
            raise MetricStoreError(
                f"Stored row {payload.get('type')}/{payload.get('id')} is inconsistent",
                details={"operation": "load"},
            ) from exc
