"""Pydantic schemas for promoter profiles, administration and analytics."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel, Field

from promoter_hub.models.promoter import PromoterTier
from promoter_hub.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema


# ============================================================================
# Requests
# ============================================================================

class PromoterApply(BaseCreateSchema):
    """Application to join the promoter program"""
    business_name: str = Field(..., min_length=2, max_length=200)
    territory: Optional[str] = Field(None, max_length=200)
    specialization: Optional[str] = Field(None, max_length=200)


class PromoterUpdate(BaseUpdateSchema):
    business_name: Optional[str] = Field(None, min_length=2, max_length=200)
    territory: Optional[str] = Field(None, max_length=200)
    specialization: Optional[str] = Field(None, max_length=200)


class PromoterApproval(BaseCreateSchema):
    """Admin decision on a pending application"""
    promoter_id: UUID
    approved: bool
    notes: Optional[str] = Field(None, max_length=1000)


class PromoterTierUpdate(BaseCreateSchema):
    promoter_id: UUID
    tier: PromoterTier


# ============================================================================
# Responses
# ============================================================================

class PromoterResponse(BaseResponseSchema):
    """Promoter profile"""
    id: UUID
    user_id: UUID
    business_name: str
    territory: Optional[str] = None
    specialization: Optional[str] = None
    tier: str
    commission_rate: Decimal
    invitation_quota: int
    invitations_used: int
    successful_invitations: int
    total_partners_invited: int
    total_commissions_earned: Decimal
    is_active: bool
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    created_at: datetime


class PromoterProfileResponse(BaseModel):
    promoter: PromoterResponse
    invitation_count: int
    commission_count: int
    monthly_commissions: Decimal


class PendingApplicationList(BaseModel):
    items: List[PromoterResponse]
    total: int


class QuotaUsage(BaseModel):
    used: int
    total: int
    percentage: float


class CommissionTypeTotal(BaseModel):
    amount: Decimal
    count: int


class AnalyticsOverview(BaseModel):
    total_invitations: int
    monthly_invitations: int
    successful_invitations: int
    conversion_rate: float
    monthly_commissions: Decimal
    total_commissions: Decimal
    current_tier: str
    quota_usage: QuotaUsage
    commissions_by_type: Dict[str, CommissionTypeTotal]


class TierRequirementsResponse(BaseModel):
    successful_invitations: int
    total_commissions: Decimal


class TierProgressValues(BaseModel):
    invitations: float
    commissions: float


class TierProgress(BaseModel):
    current_tier: str
    next_tier: str
    requirements: TierRequirementsResponse
    progress: TierProgressValues


class PromoterAnalytics(BaseModel):
    """Dashboard analytics for a promoter"""
    overview: AnalyticsOverview
    tier_progress: Optional[TierProgress] = None
