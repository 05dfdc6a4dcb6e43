"""Statements issued by the table gateway and executor error handling."""

from __future__ import annotations

import asyncio

import pymysql
import pytest

from uuid_bench.backend import InMemoryExecutor, MySqlExecutor, TableGateway
from uuid_bench.config import MySqlConfig
from uuid_bench.errors import BackendError


def test_ensure_schema_creates_missing_index() -> None:
    executor = InMemoryExecutor(row_counts={"select 1 from information_schema": 0})
    gateway = TableGateway("seq_keys", executor)

    asyncio.run(gateway.ensure_schema_present())

    statements = list(executor.statements)
    assert statements[0] == "create database if not exists test_db;"
    assert statements[1].startswith("create table if not exists test_db.seq_keys(")
    assert "id binary(16) not null primary key" in statements[1]
    assert statements[-1] == "create index seq_keys_idx_inc on test_db.seq_keys (inc)"


def test_ensure_schema_is_idempotent_when_index_exists() -> None:
    executor = InMemoryExecutor(row_counts={"select 1 from information_schema": 1})
    gateway = TableGateway("seq_keys", executor)

    asyncio.run(gateway.ensure_schema_present())
    asyncio.run(gateway.ensure_schema_present())

    assert not any(s.startswith("create index") for s in executor.statements)


def test_insert_statement_format() -> None:
    executor = InMemoryExecutor()
    gateway = TableGateway("broken_keys", executor)
    rows = [(0, bytes(range(16)), 42), (1, b"\xab" * 16, 7)]

    asyncio.run(gateway.insert_batch(rows))

    assert list(executor.statements) == [
        "insert into test_db.broken_keys (id, inc, name) values "
        "(0x000102030405060708090A0B0C0D0E0F,0,42), "
        "(0xABABABABABABABABABABABABABABABAB,1,7);"
    ]


def test_insert_of_no_rows_issues_nothing() -> None:
    executor = InMemoryExecutor()
    assert asyncio.run(TableGateway("t", executor).insert_batch([])) == 0
    assert not executor.statements


def test_sample_query() -> None:
    gateway = TableGateway("guid_keys", InMemoryExecutor())
    assert gateway.sample_query() == (
        "select count(*) from (select * from test_db.guid_keys "
        "where name like '%1%' order by inc limit 50000) as a;"
    )


def test_in_memory_executor_failure() -> None:
    executor = InMemoryExecutor(failure=BackendError("down"))
    with pytest.raises(BackendError):
        asyncio.run(executor.execute_statement("select 1"))


class _FakeCursor:
    def __init__(self, connection: "_FakeConnection") -> None:
        self.connection = connection

    def __enter__(self) -> "_FakeCursor":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def execute(self, text: str) -> int:
        self.connection.executed.append(text)
        if self.connection.error is not None:
            raise self.connection.error
        return 3


class _FakeConnection:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.executed: list[str] = []
        self.closed = False

    def cursor(self) -> _FakeCursor:
        return _FakeCursor(self)

    def close(self) -> None:
        self.closed = True


def test_mysql_executor_opens_and_closes_a_connection_per_call(monkeypatch) -> None:
    connections: list[_FakeConnection] = []

    def fake_connect(**kwargs):
        assert kwargs["autocommit"] is True
        assert kwargs["port"] == 23306
        conn = _FakeConnection()
        connections.append(conn)
        return conn

    monkeypatch.setattr(pymysql, "connect", fake_connect)
    executor = MySqlExecutor(MySqlConfig(port=23306))

    assert asyncio.run(executor.execute_statement("select 1")) == 3
    assert asyncio.run(executor.execute_statement("select 2")) == 3

    assert len(connections) == 2
    assert all(c.closed for c in connections)


def test_mysql_executor_wraps_errors_and_still_closes(monkeypatch) -> None:
    conn = _FakeConnection(error=pymysql.err.ProgrammingError(1064, "syntax error"))
    monkeypatch.setattr(pymysql, "connect", lambda **kwargs: conn)
    executor = MySqlExecutor(MySqlConfig())

    with pytest.raises(BackendError) as info:
        asyncio.run(executor.execute_statement("selec 1"))

    assert info.value.code == 1064
    assert conn.closed


def test_mysql_executor_wraps_connect_failures(monkeypatch) -> None:
    def refuse(**kwargs):
        raise pymysql.err.OperationalError(2003, "Can't connect")

    monkeypatch.setattr(pymysql, "connect", refuse)
    with pytest.raises(BackendError) as info:
        asyncio.run(MySqlExecutor(MySqlConfig()).execute_statement("select 1"))
    assert info.value.code == 2003
