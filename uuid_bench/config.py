"""
Configuration for benchmark runs.

Defaults describe the usual local setup: one MySQL instance per key table,
published on ports 13306, 23306 and 33306. Environment variables override
the defaults and CLI flags in ``runner`` override both.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, field, replace
from typing import Dict, List, Mapping, Optional

from .keys import GeneratorVariant


OPERATION_INSERT = "insert"
OPERATION_SELECT = "select"
ALL_OPERATIONS = [OPERATION_INSERT, OPERATION_SELECT]

BACKEND_MYSQL = "mysql"
BACKEND_MEMORY = "memory"

TABLE_NAMES: Dict[GeneratorVariant, str] = {
    GeneratorVariant.RANDOM: "guid_keys",
    GeneratorVariant.TIME_ORDERED: "seq_keys",
    GeneratorVariant.TIME_ORDERED_TRUNCATED: "broken_keys",
}

_ENV_PREFIX = "UUID_BENCH_"


@dataclass
class MySqlConfig:
    host: str = "localhost"
    port: int = 3306
    user: str = "root"
    password: str = "root"
    charset: str = "utf8mb4"
    connect_timeout: int = 10
    read_timeout: int = 20
    write_timeout: int = 20

    def with_port(self, port: int) -> "MySqlConfig":
        return replace(self, port=port)


@dataclass
class PipelineConfig:
    """Shape of each load pipeline."""

    queue_capacity: int = 30
    workers: int = 30
    cooldown_s: float = 1.0
    poll_interval_s: float = 0.1  # upper bound on how long a stop can go unnoticed

    def __post_init__(self) -> None:
        if self.queue_capacity <= 0:
            raise ValueError("queue_capacity must be > 0")
        if self.workers <= 0:
            raise ValueError("workers must be > 0")
        if self.cooldown_s < 0:
            raise ValueError("cooldown_s must be >= 0")
        if self.poll_interval_s <= 0:
            raise ValueError("poll_interval_s must be > 0")


@dataclass
class BenchConfig:
    mysql: MySqlConfig = field(default_factory=MySqlConfig)
    table_ports: Dict[str, int] = field(
        default_factory=lambda: {"guid_keys": 13306, "seq_keys": 23306, "broken_keys": 33306}
    )
    variants: List[GeneratorVariant] = field(default_factory=lambda: list(GeneratorVariant))
    operations: List[str] = field(default_factory=lambda: list(ALL_OPERATIONS))
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    reset_database: bool = False
    backend: str = BACKEND_MYSQL
    http_host: str = "0.0.0.0"
    http_port: int = 8000
    sample_interval_s: float = 5.0

    def mysql_for_table(self, table_name: str) -> MySqlConfig:
        port = self.table_ports.get(table_name, self.mysql.port)
        return self.mysql.with_port(port)

    def as_dict(self) -> Dict[str, object]:
        data = asdict(self)
        data["mysql"].pop("password", None)
        return data


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_variants(value: str) -> List[GeneratorVariant]:
    names = [v.strip() for v in value.split(",") if v.strip()]
    if not names:
        raise ValueError("at least one generator variant is required")
    return [GeneratorVariant(name) for name in names]


def load_config(environ: Optional[Mapping[str, str]] = None) -> BenchConfig:
    """Build a ``BenchConfig`` from defaults plus ``UUID_BENCH_*`` variables."""
    env = os.environ if environ is None else environ
    values = {
        key[len(_ENV_PREFIX):]: value
        for key, value in env.items()
        if key.startswith(_ENV_PREFIX)
    }
    cfg = BenchConfig()

    if values.get("MYSQL_HOST"):
        cfg.mysql.host = values["MYSQL_HOST"]
    if values.get("MYSQL_USER"):
        cfg.mysql.user = values["MYSQL_USER"]
    if "MYSQL_PASSWORD" in values:
        cfg.mysql.password = values["MYSQL_PASSWORD"]
    if values.get("VARIANTS"):
        cfg.variants = parse_variants(values["VARIANTS"])
    if values.get("RESET_DB"):
        cfg.reset_database = _parse_bool(values["RESET_DB"])
    if values.get("BACKEND"):
        if values["BACKEND"] not in (BACKEND_MYSQL, BACKEND_MEMORY):
            raise ValueError(f"Unknown backend: {values['BACKEND']}")
        cfg.backend = values["BACKEND"]
    return cfg
