import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.database import get_db
from tixledger.core.dependencies import CallerContext, get_caller
from tixledger.schemas.billing import BillingPlanCreate, BillingPlanResponse, BillingPlanUpdate
from tixledger.schemas.common import PaginatedResponse
from tixledger.services import plan_service

router = APIRouter(prefix="/billing/plans", tags=["plans"])


@router.get("", response_model=PaginatedResponse[BillingPlanResponse])
async def list_plans(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    is_active: bool | None = None,
    is_public: bool | None = None,
    search: str | None = None,
    sort_by: str = Query("sort_order", pattern="^(sort_order|name|price)$"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    items, total = await plan_service.list_plans(
        db,
        caller.tenant_id,
        is_active=is_active,
        is_public=is_public,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse[BillingPlanResponse].build(
        [BillingPlanResponse.model_validate(p) for p in items], total, page, page_size
    )


@router.get("/{plan_id}", response_model=BillingPlanResponse)
async def get_plan(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    plan_id: uuid.UUID,
):
    return await plan_service.get_plan(db, caller.tenant_id, plan_id)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=BillingPlanResponse)
async def create_plan(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: BillingPlanCreate,
):
    data = body.model_dump()
    data["app_id"] = caller.app_id
    plan = await plan_service.create_plan(db, caller.tenant_id, data)
    await db.commit()
    return plan


@router.patch("/{plan_id}", response_model=BillingPlanResponse)
async def update_plan(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    plan_id: uuid.UUID,
    body: BillingPlanUpdate,
):
    plan = await plan_service.update_plan(db, caller.tenant_id, plan_id, body.model_dump(exclude_unset=True))
    await db.commit()
    return plan


@router.delete("/{plan_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_plan(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    plan_id: uuid.UUID,
):
    await plan_service.delete_plan(db, caller.tenant_id, plan_id)
    await db.commit()
