"""Metrics and ledger endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_current_user, get_pipeline
from src.reclaim.pipeline import ReclaimPipeline

router = APIRouter(prefix="/api/v1", tags=["metrics"])


@router.get("/metrics")
async def get_metrics(
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    """Running totals (lamports plus SOL conversions)."""
    return pipeline.get_metrics().model_dump(by_alias=True)


@router.get("/logs")
async def get_logs(
    limit: int = Query(100, ge=1, le=1000),
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> list[dict[str, Any]]:
    """Most recent ledger entries, newest last."""
    return [
        entry.model_dump(by_alias=True, exclude_none=True)
        for entry in pipeline.get_recent_logs(limit)
    ]
