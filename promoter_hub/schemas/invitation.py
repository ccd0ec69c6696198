"""Pydantic schemas for partner invitations."""

from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Literal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from promoter_hub.models.partner import DocumentType
from promoter_hub.models.promoter import InvitationType, InvitationStatus
from promoter_hub.schemas.base import (
    BaseResponseSchema,
    BaseCreateSchema,
    BaseUpdateSchema,
    PaginationMeta,
    check_email_address,
)


# ============================================================================
# Promoter-side requests
# ============================================================================

class InvitationCreate(BaseCreateSchema):
    """Invitation issued by a promoter"""
    target_email: str = Field(..., max_length=255)
    target_phone: Optional[str] = Field(None, max_length=20)
    target_name: Optional[str] = Field(None, max_length=200)
    target_business_name: Optional[str] = Field(None, max_length=200)
    personalized_message: Optional[str] = Field(None, max_length=1000)
    invitation_type: InvitationType = InvitationType.DIRECT
    expires_at: Optional[datetime] = None

    @field_validator('target_email')
    @classmethod
    def target_email_is_valid(cls, v):
        return check_email_address(v)

    @field_validator('expires_at')
    @classmethod
    def expiry_must_be_aware(cls, v):
        if v is not None and v.tzinfo is None:
            raise ValueError("expires_at must include a timezone offset")
        return v


class InvitationUpdate(BaseUpdateSchema):
    personalized_message: Optional[str] = Field(None, max_length=1000)
    expires_at: Optional[datetime] = None

    @field_validator('expires_at')
    @classmethod
    def expiry_must_be_aware(cls, v):
        if v is not None and v.tzinfo is None:
            raise ValueError("expires_at must include a timezone offset")
        return v


InvitationSortField = Literal["created_at", "expires_at", "target_email"]


# ============================================================================
# Public acceptance payload
# ============================================================================

class AcceptPartnerData(BaseCreateSchema):
    name: str = Field(..., min_length=2, max_length=200)
    email: str = Field(..., max_length=255)
    phone: str = Field(..., min_length=8, max_length=20)
    document: str = Field(..., min_length=11, max_length=20)
    document_type: DocumentType
    description: Optional[str] = Field(None, max_length=2000)

    @field_validator('email')
    @classmethod
    def email_is_valid(cls, v):
        return check_email_address(v)


class AcceptUserData(BaseCreateSchema):
    name: str = Field(..., min_length=2, max_length=200)
    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=8, max_length=72)

    @field_validator('email')
    @classmethod
    def email_is_valid(cls, v):
        return check_email_address(v)


class AcceptAddress(BaseCreateSchema):
    street: str = Field(..., min_length=1, max_length=255)
    number: str = Field(..., min_length=1, max_length=20)
    complement: Optional[str] = Field(None, max_length=100)
    neighborhood: str = Field(..., min_length=1, max_length=100)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=2, max_length=2)
    zip_code: str = Field(..., pattern=r"^\d{5}-?\d{3}$")


class InvitationAccept(BaseCreateSchema):
    """Registration submitted by the invited partner"""
    partner_data: AcceptPartnerData
    user_data: AcceptUserData
    address: AcceptAddress


# ============================================================================
# Responses
# ============================================================================

class InvitationResponse(BaseResponseSchema):
    id: UUID
    invitation_code: str
    promoter_id: UUID
    target_email: str
    target_phone: Optional[str] = None
    target_name: Optional[str] = None
    target_business_name: Optional[str] = None
    personalized_message: Optional[str] = None
    invitation_type: InvitationType
    status: InvitationStatus
    commission_percentage: Decimal
    expires_at: datetime
    sent_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None
    expired_at: Optional[datetime] = None
    expiration_reason: Optional[str] = None
    resulting_partner_id: Optional[UUID] = None
    created_at: datetime


class InvitationCreated(BaseModel):
    invitation: InvitationResponse
    invitation_url: str


class InvitationList(BaseModel):
    """Paginated invitation list"""
    items: List[InvitationResponse]
    pagination: PaginationMeta


class PublicPromoterUser(BaseModel):
    id: UUID
    name: str
    email: str


class PublicPromoter(BaseModel):
    business_name: str
    territory: Optional[str] = None
    specialization: Optional[str] = None
    user: PublicPromoterUser


class PublicInvitationResponse(BaseModel):
    """What the invited partner sees when opening the link"""
    id: UUID
    target_email: str
    target_name: Optional[str] = None
    target_business_name: Optional[str] = None
    personalized_message: Optional[str] = None
    expires_at: datetime
    commission_percentage: Decimal
    promoter: PublicPromoter


class AcceptedInvitationResponse(BaseModel):
    invitation_id: UUID
    partner_id: UUID
    user_id: UUID
    commission_id: UUID
    message: str = "Invitation accepted"
