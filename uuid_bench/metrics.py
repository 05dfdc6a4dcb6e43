"""
Metrics for benchmark runs.

This module focuses on:
- Operation throughput per (key type, operation type) label pair
- Approximate CPU utilization of the benchmark process
- Resident memory of the benchmark process
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

import psutil
from prometheus_client import CollectorRegistry, Counter, Gauge

from .operations import OperationDescriptor


THROUGHPUT_METRIC = "uuid_variants_throughput"


@dataclass
class ThroughputSample:
    key_type: str
    operation_type: str
    operations: float

    def to_dict(self) -> Dict[str, float | str]:
        return asdict(self)


class ThroughputSink:
    """
    Operation counter shared by every worker of every pipeline.

    Counters live in the registry passed in, never in the global one, so
    each run (and each test) sees only its own counts.
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry
        self._counter = Counter(
            THROUGHPUT_METRIC,
            "Operation Throughput",
            ["key_type", "operation_type"],
            registry=registry,
        )

    def counter(self, descriptor: OperationDescriptor) -> Counter:
        return self._counter.labels(descriptor.key_type, descriptor.operation_type)

    def value(self, descriptor: OperationDescriptor) -> float:
        value = self.registry.get_sample_value(
            f"{THROUGHPUT_METRIC}_total",
            {"key_type": descriptor.key_type, "operation_type": descriptor.operation_type},
        )
        return value or 0.0

    def snapshot(self) -> List[ThroughputSample]:
        samples: List[ThroughputSample] = []
        for metric in self._counter.collect():
            for sample in metric.samples:
                if not sample.name.endswith("_total"):
                    continue
                samples.append(
                    ThroughputSample(
                        key_type=sample.labels["key_type"],
                        operation_type=sample.labels["operation_type"],
                        operations=sample.value,
                    )
                )
        return samples


class ProcessSampler:
    """Periodically record this process's CPU and RSS into gauges."""

    def __init__(self, registry: CollectorRegistry, interval_s: float = 5.0) -> None:
        self.interval_s = interval_s
        self._proc = psutil.Process(os.getpid())
        self.cpu_percent = Gauge(
            "uuid_bench_process_cpu_percent",
            "CPU utilization of the benchmark process",
            registry=registry,
        )
        self.rss_mb = Gauge(
            "uuid_bench_process_rss_mb",
            "Resident memory of the benchmark process in MB",
            registry=registry,
        )

    def sample(self) -> None:
        self.cpu_percent.set(self._proc.cpu_percent(interval=None))
        self.rss_mb.set(self._proc.memory_info().rss / (1024 * 1024))

    async def run(self, stop_event: asyncio.Event) -> None:
        # Prime the CPU measurement to get a useful first value.
        self._proc.cpu_percent(interval=None)
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_s)
            except asyncio.TimeoutError:
                pass
            self.sample()


def rates(samples: List[ThroughputSample], duration_s: Optional[float]) -> Dict[str, float]:
    """Operations per second for each ``key_type/operation_type`` label."""
    if not duration_s or duration_s <= 0:
        duration_s = 1e-9
    return {
        f"{s.key_type}/{s.operation_type}": s.operations / duration_s
        for s in samples
    }
