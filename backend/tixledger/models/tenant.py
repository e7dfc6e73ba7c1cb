from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from tixledger.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Tenant(Base, UUIDPrimaryKeyMixin, TimestampMixin):
    """A producer's organisation. One tenant per producer user."""

    __tablename__ = "tenants"

    user_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    # "public" until Pro activation, then the tenant's own id
    app_id: Mapped[str] = mapped_column(String(255), default="public", nullable=False, index=True)
    is_pro: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pro_activated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    primary_domain: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(50), default="active", nullable=False)
