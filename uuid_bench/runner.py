"""
CLI entrypoint for the key throughput benchmark.

Examples:

    python -m uuid_bench.runner serve --host 127.0.0.1 --port 8000
    python -m uuid_bench.runner run --duration 60 --variants time_ordered,time_ordered_truncated
    python -m uuid_bench.runner run --backend memory --duration 5
    python -m uuid_bench.runner keys --count 20
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import dataclasses
import logging
import os
import signal
import sys
import time
from typing import Iterator, List, Optional

import uvicorn
from prometheus_client import CollectorRegistry

from .config import (
    ALL_OPERATIONS,
    BACKEND_MEMORY,
    BACKEND_MYSQL,
    BenchConfig,
    load_config,
    parse_variants,
)
from .errors import SetupError
from .keys import KEY_SIZE, TimeOrderedKeyGenerator, new_key, roundtrip_as_guid
from .metrics import ProcessSampler, ThroughputSink, rates
from .orchestrator import build_orchestrator
from .service import create_app


logger = logging.getLogger("uuid_bench")

_LOG_LEVEL_ENV = "UUID_BENCH_LOG_LEVEL"
_STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class _BenchServer(uvicorn.Server):
    """uvicorn server that leaves SIGINT/SIGTERM to ``_serve`` so pipelines can drain."""

    @contextlib.contextmanager
    def capture_signals(self) -> Iterator[None]:
        yield


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Compare database throughput across primary-key generators.")
    parser.add_argument(
        "--log-level",
        default=os.environ.get(_LOG_LEVEL_ENV, "INFO"),
        help="Logging level (default from UUID_BENCH_LOG_LEVEL or INFO).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("serve", "Run the benchmark and serve /metrics until interrupted."),
        ("run", "Run the benchmark for a fixed window and print throughput."),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("--variants", type=parse_variants, help="Comma-separated generator variants.")
        p.add_argument(
            "--operations",
            default=",".join(ALL_OPERATIONS),
            help="Comma-separated operation types (insert, select).",
        )
        p.add_argument("--backend", choices=[BACKEND_MYSQL, BACKEND_MEMORY], help="Statement backend.")
        p.add_argument("--mysql-host", help="MySQL host shared by every key table.")
        p.add_argument("--workers", type=int, help="Workers per pipeline.")
        p.add_argument("--queue-capacity", type=int, help="Pending operations per pipeline.")
        p.add_argument("--cooldown", type=float, help="Seconds a worker pauses after a failure.")
        p.add_argument("--reset-db", action="store_true", help="Drop the test database before starting.")
        if name == "serve":
            p.add_argument("--host", default="0.0.0.0", help="HTTP bind address.")
            p.add_argument("--port", type=int, default=8000, help="HTTP port.")
        else:
            p.add_argument("--duration", type=float, default=60.0, help="Seconds to run.")

    keys = sub.add_parser("keys", help="Print time-ordered keys next to their broken GUID round trip.")
    keys.add_argument("--count", type=int, default=20, help="Number of keys.")
    keys.add_argument("--step-minutes", type=float, default=1.0, help="Clock advance between keys.")

    return parser.parse_args(argv)


def _build_config(args: argparse.Namespace) -> BenchConfig:
    cfg = load_config()
    if args.variants:
        cfg.variants = args.variants
    cfg.operations = [o.strip() for o in args.operations.split(",") if o.strip()]
    unknown = set(cfg.operations) - set(ALL_OPERATIONS)
    if unknown:
        raise ValueError(f"Unknown operation types: {', '.join(sorted(unknown))}")
    if args.backend:
        cfg.backend = args.backend
    if args.mysql_host:
        cfg.mysql.host = args.mysql_host
    overrides = {
        name: value
        for name, value in (
            ("workers", args.workers),
            ("queue_capacity", args.queue_capacity),
            ("cooldown_s", args.cooldown),
        )
        if value is not None
    }
    if overrides:
        # replace() re-runs PipelineConfig validation.
        cfg.pipeline = dataclasses.replace(cfg.pipeline, **overrides)
    if args.reset_db:
        cfg.reset_database = True
    if getattr(args, "host", None):
        cfg.http_host = args.host
    if getattr(args, "port", None):
        cfg.http_port = args.port
    return cfg


async def _serve(cfg: BenchConfig) -> None:
    registry = CollectorRegistry()
    sink = ThroughputSink(registry)
    orchestrator = build_orchestrator(cfg, sink)
    sampler = ProcessSampler(registry, cfg.sample_interval_s)
    app = create_app(orchestrator, registry)
    server = _BenchServer(uvicorn.Config(app, host=cfg.http_host, port=cfg.http_port, log_config=None))

    stop_event = asyncio.Event()

    def request_stop(signame: str) -> None:
        logger.info("Received %s, draining pipelines", signame)
        stop_event.set()
        server.should_exit = True

    loop = asyncio.get_running_loop()
    for sig in _STOP_SIGNALS:
        loop.add_signal_handler(sig, request_stop, sig.name)

    try:
        bench = asyncio.create_task(orchestrator.run(stop_event))
        sampling = asyncio.create_task(sampler.run(stop_event))
        serving = asyncio.create_task(server.serve())

        # A failed setup ends the server too.
        await asyncio.wait({bench, serving}, return_when=asyncio.FIRST_COMPLETED)
        stop_event.set()
        server.should_exit = True
        await asyncio.gather(serving, sampling)
        await bench
    finally:
        for sig in _STOP_SIGNALS:
            loop.remove_signal_handler(sig)


async def _run_for(cfg: BenchConfig, duration_s: float) -> None:
    registry = CollectorRegistry()
    sink = ThroughputSink(registry)
    orchestrator = build_orchestrator(cfg, sink)

    stop_event = asyncio.Event()
    bench = asyncio.create_task(orchestrator.run(stop_event))
    start = time.perf_counter()
    try:
        await asyncio.wait_for(asyncio.shield(bench), timeout=duration_s)
    except asyncio.TimeoutError:
        pass
    stop_event.set()
    await bench
    elapsed = time.perf_counter() - start

    samples = sink.snapshot()
    per_second = rates(samples, elapsed)
    print(f"Completed run in {elapsed:.2f}s")
    for s in sorted(samples, key=lambda s: (s.key_type, s.operation_type)):
        label = f"{s.key_type}/{s.operation_type}"
        print(f"{label:<40} {int(s.operations):>10} ops  {per_second[label]:>10.1f} ops/s")


def _print_keys(count: int, step_minutes: float) -> None:
    generator = TimeOrderedKeyGenerator()
    now_ns = time.time_ns()
    step_ns = int(step_minutes * 60 * 1_000_000_000)
    for i in range(count):
        key = new_key(generator, now_ns + i * step_ns)
        broken = roundtrip_as_guid(key)
        print(f"{key.hex().upper():<{KEY_SIZE * 2}} {broken.hex().upper()}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "keys":
        _print_keys(args.count, args.step_minutes)
        return 0

    try:
        cfg = _build_config(args)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    logger.info("Benchmark config: %s", cfg.as_dict())
    try:
        if args.command == "serve":
            asyncio.run(_serve(cfg))
        else:
            asyncio.run(_run_for(cfg, args.duration))
    except SetupError as exc:
        logger.error("Benchmark setup failed: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
