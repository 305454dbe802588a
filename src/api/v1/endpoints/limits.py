"""Endpoints exposing plan limits and storage usage."""
from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.api.v1.endpoints.subscriptions import ensure_owner_access
from src.auth.jwt import require_auth
from src.services.limits import check_rate_limit
from src.services.plan_limits import PlanLimitService


router = APIRouter(prefix="/limits", tags=["limits"])


class StorageCheckBody(BaseModel):
    owner_type: Literal["team", "personal"]
    owner_id: int = Field(..., gt=0)
    additional_mb: float = Field(..., ge=0, description="Size of the pending upload")


class MemberCheckBody(BaseModel):
    owner_type: Literal["team", "personal"]
    owner_id: int = Field(..., gt=0)
    current_count: int = Field(..., ge=0, description="Members before the invitation")


@router.get("/current")
async def current_limits(
    owner_type: Literal["team", "personal"],
    owner_id: int,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    member_id = auth["member_id"]
    ensure_owner_access(member_id, owner_type, owner_id)
    await check_rate_limit(str(member_id))

    service = PlanLimitService(db)
    limits = await service.get_plan_limits(owner_type, owner_id)
    used_mb = await service.storage.used_mb(owner_type, owner_id)

    return {
        "subscribed": limits.plan_id is not None,
        "plan_id": limits.plan_id,
        "plan_name": limits.plan_name,
        "limits": {
            "max_members": limits.max_members,
            "max_storage_mb": limits.max_storage_mb,
        },
        "usage": {
            "used_storage_mb": used_mb,
        },
    }


@router.post("/storage/check")
async def check_storage(
    body: StorageCheckBody,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    ensure_owner_access(auth["member_id"], body.owner_type, body.owner_id)
    check = await PlanLimitService(db).ensure_storage_available(
        body.owner_type, body.owner_id, body.additional_mb
    )
    return {"allowed": check.allowed, "current": check.current, "limit": check.limit}


@router.post("/members/check")
async def check_members(
    body: MemberCheckBody,
    auth=Depends(require_auth),
    db: AsyncSession = Depends(get_db_session),
):
    ensure_owner_access(auth["member_id"], body.owner_type, body.owner_id)
    limits = await PlanLimitService(db).ensure_member_capacity(
        body.owner_type, body.owner_id, body.current_count
    )
    return {"allowed": True, "current": body.current_count, "limit": limits.max_members}
