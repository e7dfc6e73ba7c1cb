"""Complimentary ticket access granted by a producer to email addresses."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

import structlog
from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.exceptions import NotFoundError
from tixledger.models.ticketing import EmailAccessGrant, Ticket

logger = structlog.get_logger()

_email_adapter = TypeAdapter(EmailStr)

GRANTED = "granted"
ALREADY_EXISTS = "already_exists"
FAILED = "failed"


@dataclass
class GrantOutcome:
    email: str
    status: str
    error: str | None = None


@dataclass
class BulkGrantResult:
    granted: int = 0
    failed: int = 0
    results: list[GrantOutcome] = field(default_factory=list)


async def _get_ticket(db: AsyncSession, tenant_id: uuid.UUID, ticket_id: uuid.UUID) -> Ticket:
    result = await db.execute(select(Ticket).where(Ticket.id == ticket_id, Ticket.tenant_id == tenant_id))
    ticket = result.scalar_one_or_none()
    if ticket is None:
        raise NotFoundError(f"Ticket {ticket_id} not found")
    return ticket


async def grant_bulk_email_access(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    producer_user_id: str,
    ticket_id: uuid.UUID,
    emails: list[str],
) -> BulkGrantResult:
    """Grant each email access to the ticket; one bad email does not stop the rest.

    Each insert runs in its own savepoint so a failure only discards that row.
    """
    ticket = await _get_ticket(db, tenant_id, ticket_id)
    outcome = BulkGrantResult()
    seen: set[str] = set()

    for raw in emails:
        email = raw.strip().lower()
        try:
            _email_adapter.validate_python(email)
        except ValidationError:
            outcome.results.append(GrantOutcome(email=raw, status=FAILED, error="Invalid email address"))
            outcome.failed += 1
            continue

        if email in seen or await _existing_grant(db, ticket_id, email):
            outcome.results.append(GrantOutcome(email=email, status=ALREADY_EXISTS))
            continue
        seen.add(email)

        try:
            async with db.begin_nested():
                db.add(
                    EmailAccessGrant(
                        tenant_id=tenant_id,
                        app_id=ticket.app_id,
                        user_id=producer_user_id,
                        ticket_id=ticket_id,
                        email=email,
                        status="active",
                    )
                )
        except IntegrityError as exc:
            outcome.results.append(GrantOutcome(email=email, status=FAILED, error=str(exc.orig)))
            outcome.failed += 1
            continue

        outcome.results.append(GrantOutcome(email=email, status=GRANTED))
        outcome.granted += 1

    logger.info(
        "billing.email_access_granted",
        tenant_id=str(tenant_id),
        ticket_id=str(ticket_id),
        granted=outcome.granted,
        failed=outcome.failed,
    )
    return outcome


async def _existing_grant(db: AsyncSession, ticket_id: uuid.UUID, email: str) -> EmailAccessGrant | None:
    result = await db.execute(
        select(EmailAccessGrant).where(
            EmailAccessGrant.ticket_id == ticket_id,
            func.lower(EmailAccessGrant.email) == email,
        )
    )
    return result.scalar_one_or_none()


async def get_email_access_statuses(
    db: AsyncSession,
    tenant_id: uuid.UUID,
    ticket_id: uuid.UUID,
    emails: list[str],
) -> dict[str, str | None]:
    """Map each email to its grant status, or None when it has no grant."""
    normalised = [e.strip().lower() for e in emails]
    result = await db.execute(
        select(EmailAccessGrant.email, EmailAccessGrant.status).where(
            EmailAccessGrant.tenant_id == tenant_id,
            EmailAccessGrant.ticket_id == ticket_id,
            func.lower(EmailAccessGrant.email).in_(normalised),
        )
    )
    found = {email.lower(): status for email, status in result.all()}
    return {email: found.get(email) for email in normalised}
