"""Plan catalogue endpoints; writes are restricted to admins."""
from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.deps import get_db_session
from src.auth.jwt import require_admin
from src.cache.decorators import cached, invalidate_prefix
from src.core.exceptions import NotFoundError, ValidationError
from src.repositories.plan_repo import PlanRepo
from src.schemas.plan import PlanCreate, PlanRead, PlanUpdate


router = APIRouter(prefix="/plans", tags=["plans"])

PLAN_CACHE_PREFIX = "plans"


@router.get("", response_model=List[PlanRead])
@cached(key_prefix=PLAN_CACHE_PREFIX)
async def list_plans(db: AsyncSession = Depends(get_db_session)):
    plans = await PlanRepo(db).list_all()
    return [PlanRead.model_validate(plan) for plan in plans]


@router.get("/{plan_id}", response_model=PlanRead)
@cached(key_prefix=PLAN_CACHE_PREFIX)
async def get_plan(plan_id: int, db: AsyncSession = Depends(get_db_session)):
    plan = await PlanRepo(db).get(plan_id)
    if plan is None:
        raise NotFoundError("Plan not found")
    return PlanRead.model_validate(plan)


@router.post("", response_model=PlanRead, status_code=status.HTTP_201_CREATED)
async def create_plan(
    body: PlanCreate,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    plan = await PlanRepo(db).create(**body.model_dump())
    await db.commit()
    await invalidate_prefix(PLAN_CACHE_PREFIX)
    return PlanRead.model_validate(plan)


@router.put("/{plan_id}", response_model=PlanRead)
async def update_plan(
    plan_id: int,
    body: PlanUpdate,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    repo = PlanRepo(db)
    plan = await repo.get(plan_id)
    if plan is None:
        raise NotFoundError("Plan not found")

    plan = await repo.update(plan, **body.model_dump(exclude_unset=True))
    await db.commit()
    await invalidate_prefix(PLAN_CACHE_PREFIX)
    return PlanRead.model_validate(plan)


@router.delete("/{plan_id}")
async def delete_plan(
    plan_id: int,
    auth=Depends(require_admin),
    db: AsyncSession = Depends(get_db_session),
):
    repo = PlanRepo(db)
    plan = await repo.get(plan_id)
    if plan is None:
        raise NotFoundError("Plan not found")
    if await repo.is_referenced(plan_id):
        raise ValidationError("Plan has subscriptions and cannot be deleted")

    await repo.delete(plan)
    await db.commit()
    await invalidate_prefix(PLAN_CACHE_PREFIX)
    return {"success": True}
