"""
Run one load pipeline per (key generator, operation type) pair.

The schema for every table is created before any pipeline starts; a failure
there aborts the whole run. Pipelines then run side by side until the stop
event fires and share nothing but that event and the metrics sink.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from .backend import InMemoryExecutor, MySqlExecutor, StatementExecutor, TableGateway
from .config import BACKEND_MEMORY, TABLE_NAMES, BenchConfig, PipelineConfig
from .errors import SetupError
from .keys import GeneratorVariant, generator_for
from .metrics import ThroughputSink
from .operations import create_factory
from .pipeline import Pipeline, PipelineStats


logger = logging.getLogger(__name__)


@dataclass
class Scenario:
    variant: GeneratorVariant
    operation_type: str
    gateway: TableGateway


@dataclass
class PipelineStatus:
    key_type: str
    operation_type: str
    table: str
    state: str
    queued: int
    stats: PipelineStats


class BenchmarkOrchestrator:
    def __init__(
        self,
        scenarios: Sequence[Scenario],
        sink: ThroughputSink,
        pipeline_config: Optional[PipelineConfig] = None,
        reset_database: bool = False,
    ) -> None:
        if not scenarios:
            raise ValueError("at least one scenario is required")
        self.scenarios = list(scenarios)
        self.sink = sink
        self.pipeline_config = pipeline_config or PipelineConfig()
        self.reset_database = reset_database
        self.pipelines: List[Pipeline] = []
        self._tables: Dict[int, str] = {}

    def _gateways(self) -> List[TableGateway]:
        seen: Dict[int, TableGateway] = {}
        for scenario in self.scenarios:
            seen.setdefault(id(scenario.gateway), scenario.gateway)
        return list(seen.values())

    async def setup(self) -> None:
        """Make sure every table exists. Any failure is raised as ``SetupError``."""
        for gateway in self._gateways():
            try:
                if self.reset_database:
                    logger.info("Dropping database %s for %s", gateway.database, gateway.table_name)
                    await gateway.drop_database()
                await gateway.ensure_schema_present()
            except Exception as exc:
                raise SetupError(f"Failed to initialize {gateway.qualified_name}: {exc}") from exc

    def _build_pipelines(self) -> List[Pipeline]:
        pipelines: List[Pipeline] = []
        for scenario in self.scenarios:
            # A fresh generator and factory per pipeline; sequence values
            # must not be shared between pipelines.
            factory = create_factory(
                scenario.operation_type,
                generator_for(scenario.variant),
                scenario.gateway,
            )
            pipeline = Pipeline(factory, self.sink, self.pipeline_config)
            self._tables[id(pipeline)] = scenario.gateway.table_name
            pipelines.append(pipeline)
        return pipelines

    async def run(self, stop_event: asyncio.Event) -> List[PipelineStats]:
        await self.setup()
        self.pipelines = self._build_pipelines()
        logger.info("Starting %d pipelines", len(self.pipelines))
        return list(await asyncio.gather(*(p.run(stop_event) for p in self.pipelines)))

    def statuses(self) -> List[PipelineStatus]:
        return [
            PipelineStatus(
                key_type=p.descriptor.key_type,
                operation_type=p.descriptor.operation_type,
                table=self._tables.get(id(p), ""),
                state=p.state.value,
                queued=p.queued,
                stats=p.stats,
            )
            for p in self.pipelines
        ]


def build_scenarios(config: BenchConfig) -> List[Scenario]:
    """One gateway per variant's table, one scenario per configured operation."""
    scenarios: List[Scenario] = []
    for variant in config.variants:
        table = TABLE_NAMES[variant]
        executor: StatementExecutor
        if config.backend == BACKEND_MEMORY:
            executor = InMemoryExecutor()
        else:
            executor = MySqlExecutor(config.mysql_for_table(table))
        gateway = TableGateway(table, executor)
        for operation_type in config.operations:
            scenarios.append(Scenario(variant, operation_type, gateway))
    return scenarios


def build_orchestrator(config: BenchConfig, sink: ThroughputSink) -> BenchmarkOrchestrator:
    return BenchmarkOrchestrator(
        build_scenarios(config),
        sink,
        pipeline_config=config.pipeline,
        reset_database=config.reset_database,
    )
