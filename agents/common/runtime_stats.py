"""Runtime, interpreter and host gauges sampled by the agent."""

from __future__ import annotations

import gc
from dataclasses import dataclass, field

import psutil

from shared.schemas import GaugeMetric


@dataclass(slots=True)
class RuntimeStats:
    """Reads process, garbage collector and system statistics as gauges."""

    process: psutil.Process = field(default_factory=psutil.Process)

    def collect(self) -> list[GaugeMetric]:
        return self.runtime_gauges() + self.system_gauges()

    def runtime_gauges(self) -> list[GaugeMetric]:
        memory = self.process.memory_info()
        values: dict[str, float] = {
            "RSS": memory.rss,
            "VMS": memory.vms,
            "NumThreads": self.process.num_threads(),
            "CPUPercent": self.process.cpu_percent(interval=None),
        }
        if hasattr(self.process, "num_fds"):
            values["NumFDs"] = self.process.num_fds()

        for generation, count in enumerate(gc.get_count()):
            values[f"GCCount{generation}"] = count
        stats = gc.get_stats()
        values["GCCollections"] = sum(gen["collections"] for gen in stats)
        values["GCCollected"] = sum(gen["collected"] for gen in stats)
        values["GCUncollectable"] = sum(gen["uncollectable"] for gen in stats)
        return [GaugeMetric(id=name, value=float(value)) for name, value in values.items()]

    @staticmethod
    def system_gauges() -> list[GaugeMetric]:
        memory = psutil.virtual_memory()
        gauges = [
            GaugeMetric(id="TotalMemory", value=float(memory.total)),
            GaugeMetric(id="FreeMemory", value=float(memory.free)),
        ]
        for index, percent in enumerate(psutil.cpu_percent(interval=None, percpu=True), start=1):
            gauges.append(GaugeMetric(id=f"CPUutilization{index}", value=float(percent)))
        return gauges
