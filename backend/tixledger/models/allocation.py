from __future__ import annotations

import uuid

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from tixledger.models.base import AppScopedMixin, Base, TimestampMixin, UUIDPrimaryKeyMixin


class TicketWalletAllocation(Base, UUIDPrimaryKeyMixin, AppScopedMixin, TimestampMixin):
    """Capacity reserved from a producer's wallet for one ticket listing.

    Invariant: 0 <= available_quantity <= allocated_quantity.
    """

    __tablename__ = "ticket_wallet_allocations"
    __table_args__ = (
        UniqueConstraint("tenant_id", "user_id", "ticket_id", name="uq_allocations_tenant_user_ticket"),
    )

    tenant_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tenants.id"), nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    ticket_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("tickets.id"), nullable=False, index=True)
    allocated_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    available_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[str] = mapped_column(String(50), default="active", nullable=False)

    @property
    def consumed_quantity(self) -> int:
        return self.allocated_quantity - self.available_quantity
