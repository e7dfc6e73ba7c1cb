from tixledger.models.base import Base
from tixledger.models.tenant import Tenant
from tixledger.models.audit import AuditEvent
from tixledger.models.billing_plan import BillingPlan
from tixledger.models.wallet import UserWallet, WalletTransaction
from tixledger.models.subscription import UserSubscription
from tixledger.models.invoice import Invoice, InvoiceItem
from tixledger.models.ticketing import EmailAccessGrant, Order, Ticket
from tixledger.models.allocation import TicketWalletAllocation
from tixledger.models.coupon import CouponCode

__all__ = [
    "Base",
    "Tenant",
    "AuditEvent",
    "BillingPlan",
    "UserWallet", "WalletTransaction",
    "UserSubscription",
    "Invoice", "InvoiceItem",
    "Ticket", "Order", "EmailAccessGrant",
    "TicketWalletAllocation",
    "CouponCode",
]
