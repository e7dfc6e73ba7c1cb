import uuid
from datetime import datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.models.audit import AuditEvent


async def log_event(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    category: str,
    action: str,
    actor_id: str | None = None,
    actor_type: str = "user",
    resource_type: str | None = None,
    resource_id: str | None = None,
    payload: dict | None = None,
    status: str = "success",
    error_message: str | None = None,
) -> AuditEvent:
    """Append an audit event. Insert-only: events are never updated or deleted.

    The correlation id is taken from the request's structlog context when
    one is bound.
    """
    correlation_id = structlog.contextvars.get_contextvars().get("correlation_id")
    event = AuditEvent(
        tenant_id=tenant_id,
        actor_id=actor_id,
        actor_type=actor_type,
        category=category,
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        correlation_id=correlation_id,
        payload=payload,
        status=status,
        error_message=error_message,
    )
    db.add(event)
    await db.flush()
    return event


async def list_events(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    category: str | None = None,
    action: str | None = None,
    correlation_id: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    page: int = 1,
    page_size: int = 50,
) -> tuple[list[AuditEvent], int]:
    """Newest first. Returns one page of events and the unpaged total."""
    conditions = [AuditEvent.tenant_id == tenant_id]
    if category:
        conditions.append(AuditEvent.category == category)
    if action:
        conditions.append(AuditEvent.action == action)
    if correlation_id:
        conditions.append(AuditEvent.correlation_id == correlation_id)
    if date_from:
        conditions.append(AuditEvent.timestamp >= date_from)
    if date_to:
        conditions.append(AuditEvent.timestamp <= date_to)

    total = await db.scalar(select(func.count()).select_from(AuditEvent).where(*conditions)) or 0
    result = await db.execute(
        select(AuditEvent)
        .where(*conditions)
        .order_by(AuditEvent.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    return list(result.scalars().all()), total
