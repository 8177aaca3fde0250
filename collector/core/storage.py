"""Storage port implemented interchangeably by the in-memory and database backends.

The collector selects one backend at startup and injects it into the
repository, which never branches on which backend is active.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from shared.schemas import CounterMetric, GaugeMetric, MetricCollection


@runtime_checkable
class MetricsStorage(Protocol):
    """Protocol for metric persistence operations."""

    async def load(self, mtype: str, name: str) -> GaugeMetric | CounterMetric | None:
        """Return the metric for the exact (type, name) key, or ``None``."""
        ...

    async def load_all(self) -> MetricCollection:
        """Return a copy of every stored metric grouped by type and id."""
        ...

    async def store(self, metric: GaugeMetric | CounterMetric) -> None:
        """Merge one metric: gauges overwrite, counters accumulate."""
        ...

    async def store_metrics(self, metrics: list[GaugeMetric | CounterMetric]) -> None:
        """Merge a batch of metrics in input order."""
        ...

    async def restore_from_file(self) -> bool:
        """Reload state from the snapshot file; ``False`` when there is none."""
        ...

    async def write_to_file(self) -> None:
        """Persist the full state to the snapshot file."""
        ...

    async def ping(self) -> bool:
        """Report whether the backend is reachable."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        ...
