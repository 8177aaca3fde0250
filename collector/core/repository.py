"""Repository exposing the active storage backend to the HTTP layer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from shared.errors import MetricNotFoundError, MetricStoreError
from shared.schemas import CounterMetric, GaugeMetric, MetricCollection

from .storage import MetricsStorage

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAYS: tuple[float, ...] = (1.0, 3.0, 5.0)


@dataclass(slots=True)
class MetricsRepository:
    """Adds logging and bounded retries on top of a storage backend.

    Only ``MetricStoreError`` is retried. Parse errors and unsupported
    operations are caller mistakes and surface on the first attempt.
    """

    storage: MetricsStorage
    retry_delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS

    async def get_metric(self, mtype: str, name: str) -> GaugeMetric | CounterMetric:
        metric = await self.storage.load(mtype, name)
        if metric is None:
            raise MetricNotFoundError(
                f"Metric {name} of type {mtype} not found",
                details={"type": mtype, "id": name},
            )
        return metric

    async def get_metrics(self) -> MetricCollection:
        return await self.storage.load_all()

    async def save_metric(self, metric: GaugeMetric | CounterMetric) -> None:
        await self._with_retry("save_metric", lambda: self.storage.store(metric))
        logger.info("Metric is stored: type=%s id=%s", metric.type, metric.id)

    async def save_metrics(self, metrics: list[GaugeMetric | CounterMetric]) -> None:
        await self._with_retry("save_metrics", lambda: self.storage.store_metrics(metrics))
        logger.info("Stored batch of %d metrics", len(metrics))

    async def ping(self) -> bool:
        return await self.storage.ping()

    async def _with_retry(
        self, operation: str, action: Callable[[], Awaitable[None]]
    ) -> None:
        delays: tuple[float | None, ...] = (*self.retry_delays, None)
        for attempt, delay in enumerate(delays, start=1):
            try:
                await action()
                return
            except MetricStoreError as exc:  # noqa: PERF203 - explicit retry loop
                if delay is None:
                    logger.error("%s failed after %d attempts: %s", operation, attempt, exc)
                    raise
                logger.warning(
                    "%s attempt %d failed: %s; retrying in %.1fs",
                    operation,
                    attempt,
                    exc,
                    delay,
                )
                await asyncio.sleep(delay)
