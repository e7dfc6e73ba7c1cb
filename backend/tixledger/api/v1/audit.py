from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.database import get_db
from tixledger.core.dependencies import CallerContext, get_caller
from tixledger.schemas.common import AuditEventResponse, PaginatedResponse
from tixledger.services import audit_service

router = APIRouter(prefix="/audit-events", tags=["audit"])


@router.get("", response_model=PaginatedResponse[AuditEventResponse])
async def list_audit_events(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    category: str | None = None,
    action: str | None = None,
    correlation_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
):
    events, total = await audit_service.list_events(
        db,
        caller.tenant_id,
        category=category,
        action=action,
        correlation_id=correlation_id,
        date_from=date_from,
        date_to=date_to,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse[AuditEventResponse].build(
        [AuditEventResponse.model_validate(e) for e in events], total, page, page_size
    )
