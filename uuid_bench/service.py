from typing import List, Optional

from fastapi import FastAPI, Response
from fastapi.responses import PlainTextResponse
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from pydantic import BaseModel

from .orchestrator import BenchmarkOrchestrator


class PipelineStatusModel(BaseModel):
    key_type: str
    operation_type: str
    table: str
    state: str
    queued: int
    created: int
    succeeded: int
    failed: int
    started_at: Optional[float] = None
    stopped_at: Optional[float] = None


class HealthResponse(BaseModel):
    status: str
    pipelines_total: int
    pipelines_running: int


def create_app(orchestrator: BenchmarkOrchestrator, registry: CollectorRegistry) -> FastAPI:
    """
    Expose the benchmark's counters and pipeline status over HTTP.

    The orchestrator is driven elsewhere (see ``runner``); handlers only
    read from it, so scrapes never hold up the pipelines.
    """
    app = FastAPI(title="UUID Key Throughput Benchmark")

    @app.get("/", response_class=PlainTextResponse)
    def root() -> str:
        return "uuid_bench is running"

    @app.get("/healthz", response_model=HealthResponse)
    def healthz() -> HealthResponse:
        statuses = orchestrator.statuses()
        running = sum(1 for s in statuses if s.state == "running")
        if not statuses:
            status = "starting"
        elif running == len(statuses):
            status = "ok"
        elif running == 0:
            status = "stopped"
        else:
            status = "degraded"
        return HealthResponse(status=status, pipelines_total=len(statuses), pipelines_running=running)

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(content=generate_latest(registry), media_type=CONTENT_TYPE_LATEST)

    @app.get("/v1/pipelines", response_model=List[PipelineStatusModel])
    def pipelines() -> List[PipelineStatusModel]:
        return [
            PipelineStatusModel(
                key_type=s.key_type,
                operation_type=s.operation_type,
                table=s.table,
                state=s.state,
                queued=s.queued,
                **s.stats.to_dict(),
            )
            for s in orchestrator.statuses()
        ]

    return app


__all__ = ["create_app"]
