"""
Database access for the benchmark.

Executors run one statement per call on a fresh connection and report the
affected row count. ``TableGateway`` builds the benchmark's statements for
one key table on top of an executor.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import closing
from typing import Deque, Dict, Optional, Protocol, Sequence, Tuple

import pymysql

from .config import MySqlConfig
from .errors import BackendError


logger = logging.getLogger(__name__)

DEFAULT_DATABASE = "test_db"
SAMPLE_QUERY_LIMIT = 50_000

Row = Tuple[int, bytes, int]


class StatementExecutor(Protocol):
    async def execute_statement(self, text: str) -> int:
        ...


class MySqlExecutor:
    """
    PyMySQL-backed executor.

    PyMySQL is blocking, so each statement runs in the default thread pool.
    The connection is opened and closed inside that call.
    """

    def __init__(self, config: MySqlConfig) -> None:
        self.config = config

    def _connect(self) -> pymysql.connections.Connection:
        cfg = self.config
        return pymysql.connect(
            host=cfg.host,
            port=cfg.port,
            user=cfg.user,
            password=cfg.password,
            charset=cfg.charset,
            connect_timeout=cfg.connect_timeout,
            read_timeout=cfg.read_timeout,
            write_timeout=cfg.write_timeout,
            autocommit=True,
        )

    def _execute_blocking(self, text: str) -> int:
        try:
            with closing(self._connect()) as connection:
                with connection.cursor() as cursor:
                    return cursor.execute(text)
        except pymysql.MySQLError as exc:
            code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else None
            raise BackendError(f"{self.config.host}:{self.config.port}: {exc}", code=code) from exc
        except OSError as exc:
            raise BackendError(f"{self.config.host}:{self.config.port}: {exc}") from exc

    async def execute_statement(self, text: str) -> int:
        return await asyncio.to_thread(self._execute_blocking, text)


class InMemoryExecutor:
    """
    Executor that records statements instead of running them.

    ``row_counts`` maps a statement prefix to the count returned for it;
    anything else returns ``default_row_count``. Setting ``failure`` makes
    every call raise it. Only the last ``record_limit`` statements are kept.
    """

    def __init__(
        self,
        default_row_count: int = 1,
        row_counts: Optional[Dict[str, int]] = None,
        failure: Optional[Exception] = None,
        record_limit: int = 1000,
    ) -> None:
        self.default_row_count = default_row_count
        self.row_counts = dict(row_counts or {})
        self.failure = failure
        self.statements: Deque[str] = deque(maxlen=record_limit)

    async def execute_statement(self, text: str) -> int:
        # Yield like a real round-trip would.
        await asyncio.sleep(0)
        if self.failure is not None:
            raise self.failure
        self.statements.append(text)
        for prefix, count in self.row_counts.items():
            if text.startswith(prefix):
                return count
        return self.default_row_count


class TableGateway:
    """Statements for one key table: schema, batch insert, sample query."""

    def __init__(
        self,
        table_name: str,
        executor: StatementExecutor,
        database: str = DEFAULT_DATABASE,
    ) -> None:
        self.table_name = table_name
        self.executor = executor
        self.database = database

    @property
    def qualified_name(self) -> str:
        return f"{self.database}.{self.table_name}"

    @property
    def index_name(self) -> str:
        return f"{self.table_name}_idx_inc"

    async def ensure_schema_present(self) -> None:
        """Create the database, table and index unless they already exist."""
        await self.executor.execute_statement(f"create database if not exists {self.database};")
        await self.executor.execute_statement(
            f"create table if not exists {self.qualified_name}("
            "id binary(16) not null primary key, "
            "inc bigint not null, "
            "name nvarchar(50) not null)"
        )
        existing = await self.executor.execute_statement(
            "select 1 from information_schema.statistics "
            f"where table_schema = '{self.database}' "
            f"and table_name = '{self.table_name}' "
            f"and index_name = '{self.index_name}'"
        )
        if not existing:
            await self.executor.execute_statement(
                f"create index {self.index_name} on {self.qualified_name} (inc)"
            )
        logger.info("Schema ready for %s", self.qualified_name)

    async def drop_database(self) -> None:
        await self.executor.execute_statement(f"drop database if exists {self.database};")

    def insert_statement(self, rows: Sequence[Row]) -> str:
        values = ", ".join(f"(0x{key.hex().upper()},{inc},{name})" for inc, key, name in rows)
        return f"insert into {self.qualified_name} (id, inc, name) values {values};"

    def sample_query(self) -> str:
        return (
            f"select count(*) from (select * from {self.qualified_name} "
            f"where name like '%1%' order by inc limit {SAMPLE_QUERY_LIMIT}) as a;"
        )

    async def insert_batch(self, rows: Sequence[Row]) -> int:
        """Insert ``(inc, key, name)`` rows in a single statement."""
        if not rows:
            return 0
        return await self.executor.execute_statement(self.insert_statement(rows))

    async def run_sample_query(self) -> int:
        return await self.executor.execute_statement(self.sample_query())
