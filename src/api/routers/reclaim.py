"""Scan / reclaim endpoints — trigger pipeline runs.

Overlapping runs get 409 (PipelineBusyError handler in app.py).
"""

from typing import Any

from fastapi import APIRouter, Depends, Request

from src.api.app import limiter
from src.api.dependencies import get_current_user, get_pipeline
from src.reclaim.pipeline import ReclaimPipeline, reclaim_result_to_dict

router = APIRouter(prefix="/api/v1", tags=["reclaim"])


@router.post("/scan")
@limiter.limit("10/minute")
async def trigger_scan(
    request: Request,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    report = await pipeline.run_scan()
    return {"success": True, **report.to_dict()}


@router.post("/reclaim")
@limiter.limit("10/minute")
async def trigger_reclaim(
    request: Request,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    """Full cycle: scan → audit → reclaim eligible."""
    report = await pipeline.run_reclaim_cycle()
    return {
        "success": not report.skipped,
        **report.to_dict(),
        "results": [reclaim_result_to_dict(r) for r in report.results],
    }


@router.post("/reclaim/{address}")
@limiter.limit("30/minute")
async def reclaim_account(
    request: Request,
    address: str,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    result = await pipeline.reclaim_single(address)
    return reclaim_result_to_dict(result)


@router.get("/accounts")
async def list_accounts(
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> list[dict[str, Any]]:
    """Sponsored accounts with their current audit verdict."""
    return [view.to_dict() for view in await pipeline.list_accounts()]


@router.get("/config")
async def get_config(
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    return pipeline.get_config()
