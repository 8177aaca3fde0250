"""In-memory metric storage with JSON snapshot files.

A single lock guards the whole collection. Every operation holds it for its
full duration, including the file write in write-through mode, so updates
are serialized process-wide. The file write itself runs in a worker thread
so requests that do not touch the store keep being served.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from pydantic import ValidationError

from shared.errors import MetricStoreError
from shared.metrics import copy_collection, group_metrics, wrap_int64
from shared.schemas import (
    CounterMetric,
    GaugeMetric,
    MetricCollection,
    collection_adapter,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class InMemoryStorage:
    """Concrete in-memory implementation of the metrics storage port."""

    file_path: Path
    store_interval: int = 300
    _data: MetricCollection = field(init=False, default_factory=dict)
    _lock: asyncio.Lock = field(init=False, default_factory=asyncio.Lock)

    @property
    def write_through(self) -> bool:
        return self.store_interval == 0

    async def load(self, mtype: str, name: str) -> GaugeMetric | CounterMetric | None:
        async with self._lock:
            bucket = self._data.get(mtype)
            if bucket is None:
                logger.debug("Metric type %s does not exist", mtype)
                return None
            metric = bucket.get(name)
            if metric is None:
                logger.debug("Metric %s/%s does not exist", mtype, name)
            return metric

    async def load_all(self) -> MetricCollection:
        async with self._lock:
            return copy_collection(self._data)

    async def store(self, metric: GaugeMetric | CounterMetric) -> None:
        async with self._lock:
            self._merge(metric)
            if self.write_through:
                try:
                    await self._write_locked()
                except MetricStoreError:
                    # merge already applied; raising here would double-count on retry
                    logger.exception("Write-through snapshot failed after storing %s", metric.id)

    async def store_metrics(self, metrics: list[GaugeMetric | CounterMetric]) -> None:
        # Not atomic across the batch: earlier metrics stay applied when a
        # later one fails.
        for metric in metrics:
            await self.store(metric)

    async def write_to_file(self) -> None:
        async with self._lock:
            await self._write_locked()

    async def restore_from_file(self) -> bool:
        try:
            raw = self.file_path.read_bytes()
        except FileNotFoundError:
            logger.info("No snapshot at %s, starting empty", self.file_path)
            return False
        except OSError as exc:
            logger.warning("Failed to read snapshot %s: %s", self.file_path, exc)
            raise MetricStoreError(
                "Failed to read snapshot",
                details={"operation": "restore_from_file"},
            ) from exc

        if not raw.strip():
            logger.warning("Snapshot %s is empty, starting empty", self.file_path)
            return False

        try:
            snapshot = collection_adapter.validate_json(raw)
        except ValidationError as exc:
            logger.warning("Snapshot %s is malformed: %s", self.file_path, exc)
            raise MetricStoreError(
                "Snapshot is malformed",
                details={"operation": "restore_from_file", "errors": exc.error_count()},
            ) from exc

        restored = group_metrics(
            metric for bucket in snapshot.values() for metric in bucket.values()
        )
        async with self._lock:
            self._data = restored
        logger.info(
            "Restored %d metrics from %s",
            sum(len(bucket) for bucket in restored.values()),
            self.file_path,
        )
        return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    def _merge(self, metric: GaugeMetric | CounterMetric) -> None:
        bucket = self._data.setdefault(metric.type, {})
        if isinstance(metric, CounterMetric):
            existing = bucket.get(metric.id)
            if isinstance(existing, CounterMetric):
                metric = CounterMetric(
                    id=metric.id, delta=wrap_int64(existing.delta + metric.delta)
                )
        bucket[metric.id] = metric

    async def _write_locked(self) -> None:
        payload = {
            mtype: {name: metric.model_dump(mode="json") for name, metric in bucket.items()}
            for mtype, bucket in self._data.items()
        }
        try:
            encoded = json.dumps(payload, indent=2)
            written = await asyncio.to_thread(self._write_file, encoded)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to write snapshot %s: %s", self.file_path, exc)
            raise MetricStoreError(
                "Failed to write snapshot", details={"operation": "write_to_file"}
            ) from exc
        logger.debug("%d characters written to %s", written, self.file_path)

    def _write_file(self, encoded: str) -> int:
        self.file_path.parent.mkdir(parents=True, exist_ok=True)
        with self.file_path.open("w", encoding="utf-8") as handle:
            return handle.write(encoded)
