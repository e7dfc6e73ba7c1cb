"""Platform admin router: manual plan grants, Pro activation, payment confirmation.

All endpoints require the shared X-Admin-Key. These act across tenants.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.api.v1.subscriptions import serialize_purchase
from tixledger.core.database import get_db
from tixledger.core.dependencies import require_admin
from tixledger.schemas.billing import (
    AdminActivateProRequest,
    AdminGrantPlanRequest,
    CascadeResultResponse,
    InvoiceResponse,
    MarkInvoicePaidRequest,
    PlanPurchaseResponse,
)
from tixledger.services import audit_service, invoice_service, subscription_service, tenant_service

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/grant-plan", status_code=status.HTTP_201_CREATED, response_model=PlanPurchaseResponse)
async def grant_plan(
    body: AdminGrantPlanRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Grant a plan without payment (billing failed but the user paid, compensation)."""
    purchase = await subscription_service.admin_grant_plan(db, body.tenant_id, body.plan_name)
    return serialize_purchase(purchase)


@router.post("/activate-pro", response_model=CascadeResultResponse)
async def activate_pro(
    body: AdminActivateProRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Re-run the Pro activation cascade, e.g. after a failed best-effort attempt.

    Unlike the purchase path, failures here surface to the caller.
    """
    result = await tenant_service.activate_pro(db, body.tenant_id, body.custom_app_id)
    await audit_service.log_event(
        db,
        tenant_id=body.tenant_id,
        category="billing",
        action="tenant.pro_activated",
        actor_type="admin",
        resource_type="tenant",
        resource_id=str(body.tenant_id),
        payload={
            "old_app_id": result.old_app_id,
            "new_app_id": result.new_app_id,
            "total_rows_affected": result.total_rows_affected,
        },
    )
    await db.commit()
    return CascadeResultResponse(
        success=result.success,
        old_app_id=result.old_app_id,
        new_app_id=result.new_app_id,
        total_rows_affected=result.total_rows_affected,
        tables_updated={t.table_name: t.rows_affected for t in result.tables_updated},
    )


@router.post("/invoices/{invoice_number}/paid", response_model=InvoiceResponse)
async def mark_invoice_paid(
    invoice_number: str,
    body: MarkInvoicePaidRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Payment-confirmed signal from the gateway integration. Safe to retry."""
    invoice, changed = await invoice_service.mark_paid(
        db, invoice_number, external_payment_id=body.external_payment_id, payment_method=body.payment_method
    )
    if changed:
        await audit_service.log_event(
            db,
            tenant_id=invoice.tenant_id,
            category="billing",
            action="invoice.paid",
            actor_type="admin",
            resource_type="invoice",
            resource_id=invoice.invoice_number,
            payload={"external_payment_id": invoice.external_payment_id},
        )
    await db.commit()
    return invoice
