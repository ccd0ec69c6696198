"""Pydantic schemas for the commission ledger."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from promoter_hub.models.promoter import CommissionType, CommissionStatus
from promoter_hub.schemas.base import BaseResponseSchema, BaseCreateSchema, PaginationMeta


CommissionSortField = Literal["created_at", "amount", "paid_at"]


class CommissionResponse(BaseResponseSchema):
    """Ledger entry"""
    id: UUID
    promoter_id: UUID
    partner_id: Optional[UUID] = None
    commission_type: CommissionType
    reference_id: UUID
    amount: Decimal
    percentage: Decimal
    base_amount: Decimal
    status: CommissionStatus
    description: str
    payment_reference: Optional[str] = None
    dispute_reason: Optional[str] = None
    created_at: datetime
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    disputed_at: Optional[datetime] = None


class CommissionList(BaseModel):
    items: List[CommissionResponse]
    pagination: PaginationMeta


class CommissionPayment(BaseCreateSchema):
    payment_reference: Optional[str] = Field(None, max_length=100)


class CommissionDispute(BaseCreateSchema):
    reason: Optional[str] = Field(None, max_length=1000)
