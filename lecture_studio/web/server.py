"""FastAPI application exposing the job queue."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterator, List, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi import status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..config import AppConfig
from ..jobs.models import Job, JobEvent, JobStatus, JobType
from ..jobs.queue import JobQueue


LOGGER = logging.getLogger(__name__)


KEEPALIVE_SECONDS = 15.0


class JobCreatePayload(BaseModel):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


def _serialize_job(job: Job) -> Dict[str, Any]:
    return job.to_dict()


def _snapshot_event(job: Job) -> JobEvent:
    return JobEvent(
        job_id=job.id,
        status=job.status,
        progress=job.progress,
        message=job.progress_message,
        error=job.error,
        result=job.result,
        metadata=job.metadata or None,
    )


def format_sse(event: JobEvent) -> str:
    return f"event: {event.status}\ndata: {json.dumps(event.to_dict())}\n\n"


def _normalize_root_path(root_path: Optional[str]) -> str:
    if root_path is None:
        return ""
    normalized = root_path.strip()
    if not normalized:
        return ""
    if not normalized.startswith("/"):
        normalized = f"/{normalized}"
    return normalized.rstrip("/")


def create_app(
    queue: JobQueue,
    *,
    config: AppConfig,
    root_path: str | None = None,
) -> FastAPI:
    """Return a configured FastAPI application."""

    app = FastAPI(
        title="Lecture Studio",
        description="Queue and follow lecture processing jobs",
        root_path=_normalize_root_path(root_path),
    )
    app.state.server = None
    app.state.config = config
    app.state.queue = queue
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def _require_job(job_id: str) -> Job:
        job = queue.get_job(job_id)
        if job is None:
            raise HTTPException(status_code=404, detail="Job not found")
        return job

    @app.get("/api/health")
    async def health() -> Dict[str, Any]:
        return {"status": "ok", "job_types": queue.job_types}

    @app.post("/api/jobs", status_code=status.HTTP_201_CREATED)
    async def create_job(payload: JobCreatePayload) -> Dict[str, Any]:
        job_type = payload.type.strip()
        if job_type not in JobType.ALL:
            raise HTTPException(status_code=400, detail=f"Unknown job type: {job_type}")
        job_id = queue.enqueue(job_type, payload.payload)
        LOGGER.info("Enqueued %s job %s via API", job_type, job_id)
        return {"job": _serialize_job(_require_job(job_id))}

    @app.get("/api/jobs")
    async def list_jobs(
        status_filter: Optional[str] = Query(None, alias="status"),
        limit: int = Query(50, ge=1, le=500),
    ) -> Dict[str, List[Dict[str, Any]]]:
        jobs = queue.list_jobs(status=status_filter, limit=limit)
        return {"jobs": [_serialize_job(job) for job in jobs]}

    @app.get("/api/jobs/{job_id}")
    async def get_job(job_id: str) -> Dict[str, Any]:
        return {"job": _serialize_job(_require_job(job_id))}

    @app.post("/api/jobs/{job_id}/cancel")
    async def cancel_job(job_id: str) -> Dict[str, Any]:
        _require_job(job_id)
        if not queue.cancel(job_id):
            raise HTTPException(status_code=409, detail="Job is not active")
        return {"job": _serialize_job(_require_job(job_id))}

    @app.get("/api/jobs/{job_id}/events")
    def stream_job_events(job_id: str) -> StreamingResponse:
        _require_job(job_id)
        subscription = queue.subscribe(job_id)

        def _events() -> Iterator[str]:
            try:
                # Subscribed first, so nothing published after this read is missed.
                job = queue.get_job(job_id)
                if job is not None:
                    yield format_sse(_snapshot_event(job))
                    if job.status in JobStatus.TERMINAL:
                        return
                while True:
                    event = subscription.get(timeout=KEEPALIVE_SECONDS)
                    if event is None:
                        # A full buffer may have dropped the terminal event.
                        job = queue.get_job(job_id)
                        if job is None:
                            return
                        if job.status in JobStatus.TERMINAL:
                            yield format_sse(_snapshot_event(job))
                            return
                        yield ": keep-alive\n\n"
                        continue
                    yield format_sse(event)
                    if event.is_terminal:
                        return
            finally:
                queue.unsubscribe(subscription)

        return StreamingResponse(
            _events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    return app


__all__ = ["JobCreatePayload", "create_app", "format_sse"]
