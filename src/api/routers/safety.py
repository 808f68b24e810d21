"""Whitelist and emergency-stop endpoints."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from src.api.app import limiter
from src.api.dependencies import get_current_user, get_pipeline
from src.reclaim.models import WhitelistDocument
from src.reclaim.pipeline import ReclaimPipeline

router = APIRouter(prefix="/api/v1", tags=["safety"])


class EmergencyStopRequest(BaseModel):
    enable: bool
    reason: str = Field("", max_length=500)


def _state(pipeline: ReclaimPipeline) -> dict[str, Any]:
    return pipeline.get_emergency_stop().model_dump(by_alias=True)


# ── Whitelist ──


@router.get("/whitelist")
async def get_whitelist(
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    return pipeline.get_whitelist().model_dump(by_alias=True)


@router.put("/whitelist")
async def replace_whitelist(
    body: WhitelistDocument,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    """Replace the whole document. 400 if any entry isn't a valid public key."""
    return pipeline.replace_whitelist(body).model_dump(by_alias=True)


@router.post("/whitelist/accounts/{address}")
async def add_account(
    address: str,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    return {"success": True, "changed": pipeline.add_to_whitelist(address)}


@router.delete("/whitelist/accounts/{address}")
async def remove_account(
    address: str,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    return {"success": True, "changed": pipeline.remove_from_whitelist(address)}


@router.post("/whitelist/owners/{address}")
async def add_owner(
    address: str,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    return {"success": True, "changed": pipeline.add_owner_to_whitelist(address)}


@router.delete("/whitelist/owners/{address}")
async def remove_owner(
    address: str,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    return {"success": True, "changed": pipeline.remove_owner_from_whitelist(address)}


# ── Emergency stop ──


@router.get("/emergency-stop")
async def get_emergency_stop(
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    return _state(pipeline)


@router.post("/emergency-stop")
@limiter.limit("20/minute")
async def toggle_emergency_stop(
    request: Request,
    body: EmergencyStopRequest,
    pipeline: ReclaimPipeline = Depends(get_pipeline),
    _user: dict = Depends(get_current_user),
) -> dict[str, Any]:
    if body.enable:
        pipeline.enable_emergency_stop(body.reason or "Manual stop from dashboard")
    else:
        pipeline.disable_emergency_stop()
    return {"success": True, **_state(pipeline)}
