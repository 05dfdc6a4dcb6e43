"""Insert/select factories."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest

from uuid_bench.backend import InMemoryExecutor, TableGateway
from uuid_bench.keys import TimeOrderedKeyGenerator
from uuid_bench.operations import (
    InsertOperationFactory,
    OperationDescriptor,
    SelectOperationFactory,
    create_factory,
)


def _gateway() -> tuple[TableGateway, InMemoryExecutor]:
    executor = InMemoryExecutor()
    return TableGateway("seq_keys", executor), executor


def test_insert_batches_hold_one_hundred_fresh_keys() -> None:
    gateway, _ = _gateway()
    factory = InsertOperationFactory(TimeOrderedKeyGenerator(), gateway)

    op = factory.create()

    assert len(op.rows) == 100
    assert len({key for _, key, _ in op.rows}) == 100
    assert all(len(key) == 16 for _, key, _ in op.rows)
    assert all(0 <= name < 2**31 - 1 for _, _, name in op.rows)


def test_sequence_values_continue_across_creates() -> None:
    gateway, _ = _gateway()
    factory = InsertOperationFactory(TimeOrderedKeyGenerator(), gateway, batch_size=10)

    first = factory.create()
    second = factory.create()
    third = factory.create()

    incs = [inc for op in (first, second, third) for inc, _, _ in op.rows]
    assert incs == list(range(30))


def test_separate_factories_keep_separate_sequences() -> None:
    gateway, _ = _gateway()
    a = InsertOperationFactory(TimeOrderedKeyGenerator(), gateway, batch_size=5)
    b = InsertOperationFactory(TimeOrderedKeyGenerator(), gateway, batch_size=5)
    a.create()
    assert [inc for inc, _, _ in b.create().rows] == [0, 1, 2, 3, 4]


def test_filler_names_come_from_the_injected_rng() -> None:
    gateway, _ = _gateway()
    one = InsertOperationFactory(TimeOrderedKeyGenerator(), gateway, rng=np.random.default_rng(7))
    two = InsertOperationFactory(TimeOrderedKeyGenerator(), gateway, rng=np.random.default_rng(7))
    assert [n for _, _, n in one.create().rows] == [n for _, _, n in two.create().rows]


def test_insert_operation_executes_one_statement() -> None:
    gateway, executor = _gateway()
    op = InsertOperationFactory(TimeOrderedKeyGenerator(), gateway).create()

    asyncio.run(op.execute())

    assert len(executor.statements) == 1
    assert executor.statements[0].startswith("insert into test_db.seq_keys (id, inc, name) values (0x")
    assert executor.statements[0].count("(0x") == 100


def test_select_operation_runs_sample_query() -> None:
    gateway, executor = _gateway()
    op = SelectOperationFactory(TimeOrderedKeyGenerator(), gateway).create()

    asyncio.run(op.execute())

    assert list(executor.statements) == [gateway.sample_query()]


def test_descriptors_are_stable() -> None:
    gateway, _ = _gateway()
    generator = TimeOrderedKeyGenerator()
    insert = InsertOperationFactory(generator, gateway)
    select = SelectOperationFactory(generator, gateway)

    insert.create()
    insert.create()

    assert insert.describe() == OperationDescriptor("time_ordered_uuid", "insert")
    assert insert.describe() is insert.describe()
    assert select.describe() == OperationDescriptor("time_ordered_uuid", "select")


def test_descriptor_is_immutable() -> None:
    descriptor = OperationDescriptor("k", "insert")
    with pytest.raises(AttributeError):
        descriptor.key_type = "other"  # type: ignore[misc]


def test_create_factory_rejects_unknown_operation() -> None:
    gateway, _ = _gateway()
    with pytest.raises(ValueError):
        create_factory("update", TimeOrderedKeyGenerator(), gateway)
