from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from tixledger.core.config import settings
from tixledger.core.database import get_db
from tixledger.core.dependencies import CallerContext, get_caller
from tixledger.schemas.billing import (
    ConsumeTicketsRequest,
    InvoiceResponse,
    PurchaseTicketsRequest,
    TicketPriceResponse,
    TicketPurchaseResponse,
    UsageSummaryResponse,
    WalletResponse,
    WalletTransactionResponse,
)
from tixledger.schemas.common import PaginatedResponse
from tixledger.services import billing_service, report_service, wallet_service
from tixledger.services.pricing import get_ticket_unit_price

router = APIRouter(prefix="/billing", tags=["billing"])


@router.get("/wallet", response_model=WalletResponse)
async def get_wallet(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    wallet = await wallet_service.get_or_create_wallet(db, caller.tenant_id, caller.user_id)
    await db.commit()
    return wallet


@router.get("/transactions", response_model=PaginatedResponse[WalletTransactionResponse])
async def get_transactions(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    transaction_type: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=settings.TRANSACTIONS_MAX_PAGE_SIZE),
):
    items, total = await wallet_service.list_transactions(
        db,
        caller.tenant_id,
        user_id=caller.user_id,
        transaction_type=transaction_type,
        start_date=start_date,
        end_date=end_date,
        page=page,
        page_size=page_size,
    )
    return PaginatedResponse[WalletTransactionResponse].build(
        [WalletTransactionResponse.model_validate(tx) for tx in items], total, page, page_size
    )


@router.get("/tickets/price", response_model=TicketPriceResponse)
async def get_ticket_price(quantity: int = Query(..., ge=1)):
    unit_price = get_ticket_unit_price(quantity)
    return TicketPriceResponse(quantity=quantity, unit_price=unit_price, total=unit_price * quantity)


@router.post("/tickets/purchase", status_code=status.HTTP_201_CREATED, response_model=TicketPurchaseResponse)
async def purchase_tickets(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: PurchaseTicketsRequest,
):
    purchase = await billing_service.purchase_tickets(
        db,
        caller.tenant_id,
        caller.user_id,
        quantity=body.quantity,
        unit_price=body.unit_price,
        currency=body.currency,
        payment_method_id=body.payment_method_id,
        external_payment_id=body.external_payment_id,
        billing_address=body.billing_address,
    )
    await db.commit()
    return TicketPurchaseResponse(
        wallet=WalletResponse.model_validate(purchase.wallet),
        transaction=WalletTransactionResponse.model_validate(purchase.entry),
        invoice=InvoiceResponse.model_validate(purchase.invoice),
    )


@router.post("/tickets/consume", response_model=WalletTransactionResponse)
async def consume_tickets(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
    body: ConsumeTicketsRequest,
):
    posting = await billing_service.consume_tickets(
        db,
        caller.tenant_id,
        caller.user_id,
        quantity=body.quantity,
        reference_type=body.reference_type,
        reference_id=body.reference_id,
        description=body.description,
        metadata=body.metadata,
    )
    await db.commit()
    return posting.entry


@router.get("/usage", response_model=UsageSummaryResponse)
async def get_usage(
    caller: Annotated[CallerContext, Depends(get_caller)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    return await report_service.get_usage_summary(db, caller.tenant_id, caller.user_id)
