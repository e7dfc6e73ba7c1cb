import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings
from tixledger.core.database import get_db
from tixledger.core.dependencies import CallerContext, get_caller, require_entitlement
from tixledger.schemas.billing import (
    BulkEmailGrantRequest,
    BulkEmailGrantResponse,
    EmailAccessStatusRequest,
    SalesReportEntryResponse,
)
from tixledger.schemas.common import PaginatedResponse
from tixledger.services import access_grant_service, report_service
from tixledger.services.report_service import SalesReportFilter

router = APIRouter(prefix="/billing", tags=["reports"])


@router.get("/sales-report", response_model=PaginatedResponse[SalesReportEntryResponse])
async def get_sales_report(
    caller: Annotated[CallerContext, Depends(require_entitlement("sales_reports"))],
    db: Annotated[AsyncSession, Depends(get_db)],
    entry_type: str | None = Query(None, alias="type", pattern="^(purchased|granted|all)$"),
    ticket_id: uuid.UUID | None = None,
    user_email: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    sort_by: str = Query("date", pattern="^(date|user_email|ticket_title|quantity)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=settings.SALES_REPORT_MAX_PAGE_SIZE),
):
    entries, total = await report_service.get_sales_report(
        db,
        caller.tenant_id,
        SalesReportFilter(
            type=entry_type,
            ticket_id=ticket_id,
            user_email=user_email,
            start_date=start_date,
            end_date=end_date,
        ),
        page=page,
        page_size=page_size,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return PaginatedResponse[SalesReportEntryResponse].build(
        [SalesReportEntryResponse.model_validate(e) for e in entries], total, page, page_size
    )


@router.post("/access-grants", response_model=BulkEmailGrantResponse)
async def grant_email_access(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: BulkEmailGrantRequest,
):
    outcome = await access_grant_service.grant_bulk_email_access(
        db, caller.tenant_id, caller.user_id, body.ticket_id, body.emails
    )
    await db.commit()
    return outcome


@router.post("/access-grants/status", response_model=dict[str, str | None])
async def get_email_access_statuses(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: EmailAccessStatusRequest,
):
    return await access_grant_service.get_email_access_statuses(
        db, caller.tenant_id, body.ticket_id, [str(e) for e in body.emails]
    )
