import math
import uuid
from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    items: list[T]
    total: int
    page: int
    page_size: int
    pages: int

    @classmethod
    def build(cls, items: list, total: int, page: int, page_size: int) -> "PaginatedResponse[T]":
        return cls(
            items=items,
            total=total,
            page=page,
            page_size=page_size,
            pages=math.ceil(total / page_size) if page_size else 0,
        )


class AuditEventResponse(BaseModel):
    id: int
    tenant_id: uuid.UUID
    timestamp: datetime
    actor_id: str | None = None
    actor_type: str
    category: str
    action: str
    resource_type: str | None = None
    resource_id: str | None = None
    correlation_id: str | None = None
    payload: dict | None = None
    status: str
    error_message: str | None = None

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str
    database: str
    broker: str
