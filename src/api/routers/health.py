"""Health check — no auth required."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.dependencies import get_pipeline
from src.reclaim.models import now_ms
from src.reclaim.pipeline import ReclaimPipeline

router = APIRouter(prefix="/api/v1", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    timestamp: int
    busy: bool
    emergency_stop: bool
    dry_run: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(pipeline: ReclaimPipeline = Depends(get_pipeline)) -> HealthResponse:
    stopped = pipeline.get_emergency_stop().stopped
    return HealthResponse(
        status="stopped" if stopped else "ok",
        timestamp=now_ms(),
        busy=pipeline.busy,
        emergency_stop=stopped,
        dry_run=pipeline.dry_run,
    )
