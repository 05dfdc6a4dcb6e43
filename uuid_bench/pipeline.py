"""
Bounded producer/consumer load pipeline.

One generation task creates operations and pushes them onto a bounded
queue; a fixed pool of workers pulls and executes them. A full queue
suspends the generator, so it can never get more than ``queue_capacity``
operations ahead of the workers. A worker whose operation fails logs the
error, drops the operation and waits ``cooldown_s`` before pulling again.

Both suspension points re-check the stop event every ``poll_interval_s``.
After a stop nothing new is created or dequeued; operations already held by
a worker run to completion and anything left in the queue is discarded.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from .config import PipelineConfig
from .metrics import ThroughputSink
from .operations import Operation, OperationDescriptor, OperationFactory


logger = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


@dataclass
class PipelineStats:
    created: int = 0
    succeeded: int = 0
    failed: int = 0
    started_at: Optional[float] = None
    stopped_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class Pipeline:
    def __init__(
        self,
        factory: OperationFactory,
        sink: ThroughputSink,
        config: Optional[PipelineConfig] = None,
    ) -> None:
        self.factory = factory
        self.sink = sink
        self.config = config or PipelineConfig()
        self.descriptor: OperationDescriptor = factory.describe()
        self.state = PipelineState.STARTING
        self.stats = PipelineStats()
        self._queue: asyncio.Queue[Operation] = asyncio.Queue(maxsize=self.config.queue_capacity)
        self._halt = asyncio.Event()

    def _stopping(self, stop_event: asyncio.Event) -> bool:
        return stop_event.is_set() or self._halt.is_set()

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    async def _put(self, operation: Operation, stop_event: asyncio.Event) -> bool:
        while not self._stopping(stop_event):
            try:
                await asyncio.wait_for(self._queue.put(operation), timeout=self.config.poll_interval_s)
                return True
            except asyncio.TimeoutError:
                continue
        return False

    async def _get(self, stop_event: asyncio.Event) -> Optional[Operation]:
        while not self._stopping(stop_event):
            try:
                return await asyncio.wait_for(self._queue.get(), timeout=self.config.poll_interval_s)
            except asyncio.TimeoutError:
                continue
        return None

    async def _generate(self, stop_event: asyncio.Event) -> None:
        while not self._stopping(stop_event):
            operation = self.factory.create()
            self.stats.created += 1
            if not await self._put(operation, stop_event):
                break

    async def _cooldown(self, stop_event: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.config.cooldown_s)
        except asyncio.TimeoutError:
            pass

    async def _work(self, worker_id: int, stop_event: asyncio.Event) -> None:
        counter = self.sink.counter(self.descriptor)
        while True:
            operation = await self._get(stop_event)
            if operation is None:
                return
            try:
                await operation.execute()
            except Exception:
                self.stats.failed += 1
                logger.exception(
                    "Error executing operation (%s/%s, worker %d)",
                    self.descriptor.key_type,
                    self.descriptor.operation_type,
                    worker_id,
                )
                await self._cooldown(stop_event)
                continue
            self.stats.succeeded += 1
            counter.inc()

    async def run(self, stop_event: asyncio.Event) -> PipelineStats:
        """
        Run until ``stop_event`` is set and every task has returned.

        An error raised while creating operations is fatal: the workers are
        stopped and the error propagates.
        """
        self.state = PipelineState.STARTING
        self.stats.started_at = time.time()

        generator = asyncio.create_task(self._generate(stop_event))
        workers: List[asyncio.Task] = [
            asyncio.create_task(self._work(i, stop_event)) for i in range(self.config.workers)
        ]
        self.state = PipelineState.RUNNING
        logger.info(
            "Pipeline %s/%s running with %d workers, queue capacity %d",
            self.descriptor.key_type,
            self.descriptor.operation_type,
            self.config.workers,
            self.config.queue_capacity,
        )

        try:
            await generator
        finally:
            self.state = PipelineState.DRAINING
            # Workers also stop when the generator dies.
            self._halt.set()
            await asyncio.gather(*workers)
            self._discard_queued()
            self.stats.stopped_at = time.time()
            self.state = PipelineState.STOPPED
            logger.info(
                "Pipeline %s/%s stopped: %d created, %d succeeded, %d failed",
                self.descriptor.key_type,
                self.descriptor.operation_type,
                self.stats.created,
                self.stats.succeeded,
                self.stats.failed,
            )
        return self.stats

    def _discard_queued(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()
