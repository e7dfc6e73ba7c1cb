import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, EmailStr, Field, field_validator

from tixledger.services.plan_service import BILLING_CYCLES


# Plans

class PlanFeature(BaseModel):
    code: str
    label: str
    icon: str | None = None


class BillingPlanCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    price: Decimal = Field(ge=0)
    currency: str = "INR"
    billing_cycle: str = "monthly"
    initial_tickets: int = Field(default=0, ge=0)
    features: list[PlanFeature] = []
    is_active: bool = True
    is_public: bool = False
    sort_order: int = 0

    @field_validator("billing_cycle")
    @classmethod
    def validate_cycle(cls, v: str) -> str:
        if v not in BILLING_CYCLES:
            raise ValueError(f"billing_cycle must be one of: {', '.join(BILLING_CYCLES)}")
        return v


class BillingPlanUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    billing_cycle: str | None = None
    initial_tickets: int | None = Field(default=None, ge=0)
    features: list[PlanFeature] | None = None
    is_active: bool | None = None
    is_public: bool | None = None
    sort_order: int | None = None

    @field_validator("billing_cycle")
    @classmethod
    def validate_cycle(cls, v: str | None) -> str | None:
        if v is not None and v not in BILLING_CYCLES:
            raise ValueError(f"billing_cycle must be one of: {', '.join(BILLING_CYCLES)}")
        return v


class BillingPlanResponse(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    name: str
    description: str | None = None
    price: Decimal
    currency: str
    billing_cycle: str
    initial_tickets: int
    features: list[PlanFeature] | None = None
    is_active: bool
    is_public: bool
    sort_order: int
    created_at: datetime

    model_config = {"from_attributes": True}


# Wallet and ledger

class WalletResponse(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    user_id: str
    ticket_balance: int
    currency: str
    app_id: str

    model_config = {"from_attributes": True}


class WalletTransactionResponse(BaseModel):
    id: uuid.UUID
    transaction_type: str
    amount: int
    currency: str
    balance_before: int
    balance_after: int
    reference_type: str | None = None
    reference_id: str | None = None
    description: str | None = None
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")
    created_at: datetime

    model_config = {"from_attributes": True}


class ConsumeTicketsRequest(BaseModel):
    quantity: int = Field(gt=0)
    reference_type: str = Field(min_length=1, max_length=50)
    reference_id: str = Field(min_length=1, max_length=255)
    description: str | None = None
    metadata: dict | None = None


class PurchaseTicketsRequest(BaseModel):
    quantity: int = Field(gt=0)
    unit_price: Decimal | None = Field(default=None, ge=0)
    currency: str | None = None
    payment_method_id: str | None = None
    external_payment_id: str | None = None
    billing_address: dict | None = None


class TicketPriceResponse(BaseModel):
    quantity: int
    unit_price: Decimal
    total: Decimal


# Invoices

class InvoiceItemResponse(BaseModel):
    item_type: str
    item_name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    currency: str
    metadata: dict | None = Field(default=None, validation_alias="metadata_json")

    model_config = {"from_attributes": True}


class InvoiceResponse(BaseModel):
    id: uuid.UUID
    invoice_number: str
    tenant_id: uuid.UUID
    user_id: str
    status: str
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency: str
    due_date: datetime | None = None
    paid_at: datetime | None = None
    payment_method: str | None = None
    external_payment_id: str | None = None
    billing_address: dict | None = None
    notes: str | None = None
    items: list[InvoiceItemResponse]
    created_at: datetime

    model_config = {"from_attributes": True}


class MarkInvoicePaidRequest(BaseModel):
    external_payment_id: str | None = None
    payment_method: str | None = None


class TicketPurchaseResponse(BaseModel):
    wallet: WalletResponse
    transaction: WalletTransactionResponse
    invoice: InvoiceResponse


# Subscriptions

class PurchasePlanRequest(BaseModel):
    plan_id: uuid.UUID
    payment_method_id: str | None = None
    external_payment_id: str | None = None
    billing_address: dict | None = None


class CancelSubscriptionRequest(BaseModel):
    immediate: bool = False


class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    tenant_id: uuid.UUID
    user_id: str
    plan_id: uuid.UUID
    status: str
    current_period_start: datetime
    current_period_end: datetime
    cancel_at_period_end: bool
    cancelled_at: datetime | None = None
    payment_method_id: str | None = None
    plan: BillingPlanResponse

    model_config = {"from_attributes": True}


class ProActivationResponse(BaseModel):
    success: bool
    old_app_id: str | None = None
    new_app_id: str | None = None
    total_rows_affected: int = 0
    error: str | None = None


class PlanPurchaseResponse(BaseModel):
    subscription: SubscriptionResponse
    invoice: InvoiceResponse
    wallet_balance: int
    pro_activation: ProActivationResponse | None = None


class PlanTierResponse(BaseModel):
    tier: str
    limits: dict


# Allocations

class AllocateTicketsRequest(BaseModel):
    ticket_id: uuid.UUID
    quantity: int = Field(gt=0)


class UpdateAllocationRequest(BaseModel):
    quantity: int = Field(ge=0)


class ConsumeAllocationRequest(BaseModel):
    quantity: int = Field(gt=0)


class AllocationResponse(BaseModel):
    id: uuid.UUID
    ticket_id: uuid.UUID
    user_id: str
    allocated_quantity: int
    available_quantity: int
    consumed_quantity: int
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class ReleaseAllocationResponse(BaseModel):
    ticket_id: uuid.UUID
    released_quantity: int
    wallet_balance: int


# Coupons

class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=100)
    discount_type: Literal["percentage", "fixed"]
    discount_value: Decimal = Field(gt=0)
    max_discount: Decimal | None = Field(default=None, gt=0)
    min_purchase: Decimal | None = Field(default=None, ge=0)
    usage_limit: int | None = Field(default=None, gt=0)
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool = True


class CouponResponse(BaseModel):
    id: uuid.UUID
    code: str
    discount_type: str
    discount_value: Decimal
    max_discount: Decimal | None = None
    min_purchase: Decimal | None = None
    usage_limit: int | None = None
    used_count: int
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    is_active: bool

    model_config = {"from_attributes": True}


class ValidateCouponRequest(BaseModel):
    code: str
    purchase_amount: Decimal = Field(ge=0)


class CouponValidationResponse(BaseModel):
    valid: bool
    discount_amount: Decimal = Decimal("0")
    error: str | None = None
    coupon: CouponResponse | None = None


class ApplyCouponRequest(BaseModel):
    code: str


# Access grants and reports

class BulkEmailGrantRequest(BaseModel):
    ticket_id: uuid.UUID
    emails: list[str] = Field(min_length=1, max_length=500)


class GrantOutcomeResponse(BaseModel):
    email: str
    status: str
    error: str | None = None

    model_config = {"from_attributes": True}


class BulkEmailGrantResponse(BaseModel):
    granted: int
    failed: int
    results: list[GrantOutcomeResponse]

    model_config = {"from_attributes": True}


class EmailAccessStatusRequest(BaseModel):
    ticket_id: uuid.UUID
    emails: list[EmailStr] = Field(min_length=1, max_length=500)


class SalesReportEntryResponse(BaseModel):
    id: str
    type: str
    date: datetime
    user_email: str
    ticket_id: uuid.UUID
    ticket_title: str
    quantity: int
    currency: str
    amount: Decimal | None = None
    order_number: str | None = None

    model_config = {"from_attributes": True}


class UsageSummaryResponse(BaseModel):
    wallet_balance: int
    transactions: dict[str, dict[str, int]]
    allocations: dict[str, int]


# Admin

class AdminGrantPlanRequest(BaseModel):
    tenant_id: uuid.UUID
    plan_name: str = Field(min_length=1)


class AdminActivateProRequest(BaseModel):
    tenant_id: uuid.UUID
    custom_app_id: str | None = None


class CascadeResultResponse(BaseModel):
    success: bool
    old_app_id: str
    new_app_id: str
    total_rows_affected: int
    tables_updated: dict[str, int]
