import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.database import get_db
from tixledger.core.dependencies import CallerContext, get_caller
from tixledger.schemas.billing import (
    AllocateTicketsRequest,
    AllocationResponse,
    ConsumeAllocationRequest,
    ReleaseAllocationResponse,
    UpdateAllocationRequest,
)
from tixledger.schemas.common import PaginatedResponse
from tixledger.services import allocation_service, wallet_service

router = APIRouter(prefix="/billing/allocations", tags=["allocations"])


@router.get("", response_model=PaginatedResponse[AllocationResponse])
async def list_allocations(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    ticket_id: uuid.UUID | None = None,
    allocation_status: str | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
):
    items, total = await allocation_service.list_allocations(
        db, caller.tenant_id, caller.user_id,
        ticket_id=ticket_id, status=allocation_status, page=page, page_size=page_size,
    )
    return PaginatedResponse[AllocationResponse].build(
        [AllocationResponse.model_validate(a) for a in items], total, page, page_size
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=AllocationResponse)
async def allocate_tickets(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: AllocateTicketsRequest,
):
    allocation = await allocation_service.allocate_tickets(
        db, caller.tenant_id, caller.user_id, body.ticket_id, body.quantity
    )
    await db.commit()
    return allocation


@router.put("/{ticket_id}", response_model=AllocationResponse)
async def update_allocation(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    ticket_id: uuid.UUID,
    body: UpdateAllocationRequest,
):
    allocation = await allocation_service.update_allocation(
        db, caller.tenant_id, caller.user_id, ticket_id, body.quantity
    )
    await db.commit()
    return allocation


@router.post("/{ticket_id}/consume", response_model=AllocationResponse)
async def consume_from_allocation(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    ticket_id: uuid.UUID,
    body: ConsumeAllocationRequest,
):
    allocation = await allocation_service.consume_from_allocation(
        db, caller.tenant_id, caller.user_id, ticket_id, body.quantity
    )
    await db.commit()
    return allocation


@router.delete("/{ticket_id}", response_model=ReleaseAllocationResponse)
async def release_allocation(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    ticket_id: uuid.UUID,
):
    released = await allocation_service.release_allocation(db, caller.tenant_id, caller.user_id, ticket_id)
    wallet = await wallet_service.get_or_create_wallet(db, caller.tenant_id, caller.user_id)
    await db.commit()
    return ReleaseAllocationResponse(
        ticket_id=ticket_id, released_quantity=released, wallet_balance=wallet.ticket_balance
    )
