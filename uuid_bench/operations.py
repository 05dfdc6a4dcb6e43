"""
Operations run by the load pipelines and the factories that build them.

A factory is bound to one key generator and one table. It hands out a
fresh operation per dispatch; each operation runs once and is dropped.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass
from typing import List, Optional, Protocol

import numpy as np

from .backend import Row, TableGateway
from .config import OPERATION_INSERT, OPERATION_SELECT
from .keys import KeyGenerator, new_key


INSERT_BATCH_SIZE = 100
_NAME_UPPER_BOUND = 2**31 - 1


@dataclass(frozen=True)
class OperationDescriptor:
    """Metric labels for every operation a factory creates."""

    key_type: str
    operation_type: str


class Operation(Protocol):
    async def execute(self) -> None:
        ...


class OperationFactory(Protocol):
    def describe(self) -> OperationDescriptor:
        ...

    def create(self) -> Operation:
        ...


class InsertOperation:
    def __init__(self, gateway: TableGateway, rows: List[Row]) -> None:
        self.gateway = gateway
        self.rows = rows

    async def execute(self) -> None:
        await self.gateway.insert_batch(self.rows)


class SelectOperation:
    def __init__(self, gateway: TableGateway) -> None:
        self.gateway = gateway

    async def execute(self) -> None:
        await self.gateway.run_sample_query()


class InsertOperationFactory:
    """
    Build batch inserts of freshly generated keys.

    Row ``i`` of the ``n``-th batch gets sequence value ``n * batch_size + i``.
    The batch counter belongs to this factory and is never reset, so one
    factory per table keeps sequence values unique.
    """

    def __init__(
        self,
        generator: KeyGenerator,
        gateway: TableGateway,
        batch_size: int = INSERT_BATCH_SIZE,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.generator = generator
        self.gateway = gateway
        self.batch_size = batch_size
        self._rng = rng if rng is not None else np.random.default_rng()
        self._batches = itertools.count()
        self._descriptor = OperationDescriptor(generator.name(), OPERATION_INSERT)

    def describe(self) -> OperationDescriptor:
        return self._descriptor

    def create(self) -> InsertOperation:
        batch = next(self._batches)
        base = batch * self.batch_size
        names = self._rng.integers(0, _NAME_UPPER_BOUND, size=self.batch_size)
        rows: List[Row] = [
            (base + i, new_key(self.generator), int(names[i]))
            for i in range(self.batch_size)
        ]
        return InsertOperation(self.gateway, rows)


class SelectOperationFactory:
    def __init__(self, generator: KeyGenerator, gateway: TableGateway) -> None:
        self.gateway = gateway
        self._descriptor = OperationDescriptor(generator.name(), OPERATION_SELECT)

    def describe(self) -> OperationDescriptor:
        return self._descriptor

    def create(self) -> SelectOperation:
        return SelectOperation(self.gateway)


def create_factory(operation_type: str, generator: KeyGenerator, gateway: TableGateway) -> OperationFactory:
    if operation_type == OPERATION_INSERT:
        return InsertOperationFactory(generator, gateway)
    if operation_type == OPERATION_SELECT:
        return SelectOperationFactory(generator, gateway)
    raise ValueError(f"Unknown operation type: {operation_type}")
