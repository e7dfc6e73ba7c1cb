import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.database import get_db
from tixledger.core.dependencies import CallerContext, get_caller
from tixledger.schemas.billing import InvoiceResponse
from tixledger.schemas.common import PaginatedResponse
from tixledger.services import invoice_service

router = APIRouter(prefix="/billing/invoices", tags=["invoices"])


@router.get("", response_model=PaginatedResponse[InvoiceResponse])
async def list_invoices(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    invoice_status: str | None = Query(None, alias="status"),
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
):
    items, total = await invoice_service.list_invoices(
        db,
        caller.tenant_id,
        user_id=caller.user_id,
        status=invoice_status,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse[InvoiceResponse].build(
        [InvoiceResponse.model_validate(i) for i in items], total, page, page_size
    )


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    invoice_id: uuid.UUID,
):
    return await invoice_service.get_invoice(db, caller.tenant_id, invoice_id, user_id=caller.user_id)
