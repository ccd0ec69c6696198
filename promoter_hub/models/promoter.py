"""Promoter referral models.

Promoters recruit new store partners through time-boxed invitation codes and
earn commissions when an invitation converts into an active partner.

Key Features:
- Tiered invitation quotas and commission rates
- Invitation lifecycle with lazy expiry
- Append-only commission ledger
"""
import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import (
    String, Boolean, ForeignKey, Integer, Text,
    Numeric, UniqueConstraint, Index, CheckConstraint, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from promoter_hub.database import Base
from promoter_hub.db_types import UUIDType, JSONType, UTCDateTime, utc_now

if TYPE_CHECKING:
    from promoter_hub.models.user import User
    from promoter_hub.models.partner import Partner


# ==================== ENUMS (stored as VARCHAR) ====================

class PromoterTier(str, Enum):
    """Promoter performance tier."""
    BRONZE = "BRONZE"
    SILVER = "SILVER"
    GOLD = "GOLD"
    PLATINUM = "PLATINUM"


class InvitationStatus(str, Enum):
    """Invitation lifecycle status."""
    PENDING = "PENDING"      # Created, not yet delivered
    SENT = "SENT"            # Delivered to the target
    VIEWED = "VIEWED"        # Target opened the invitation
    ACCEPTED = "ACCEPTED"    # Converted into a partner
    DECLINED = "DECLINED"    # Target refused
    EXPIRED = "EXPIRED"      # Past expiry or cancelled by the promoter


class InvitationType(str, Enum):
    DIRECT = "DIRECT"
    BULK = "BULK"
    PUBLIC = "PUBLIC"
    CAMPAIGN = "CAMPAIGN"


class ExpirationReason(str, Enum):
    """Why an invitation ended up EXPIRED."""
    EXPIRED_BY_TIME = "EXPIRED_BY_TIME"
    EXPIRED_BY_CANCELLATION = "EXPIRED_BY_CANCELLATION"


class CommissionType(str, Enum):
    INVITATION_BONUS = "INVITATION_BONUS"
    ONGOING_SALES = "ONGOING_SALES"
    EVENT_BONUS = "EVENT_BONUS"
    TIER_BONUS = "TIER_BONUS"


class CommissionStatus(str, Enum):
    """Commission payout status."""
    PENDING = "PENDING"      # Recorded, awaiting review
    APPROVED = "APPROVED"    # Approved for payout
    PAID = "PAID"            # Successfully paid
    DISPUTED = "DISPUTED"    # Contested, on hold


OPEN_INVITATION_STATUSES = (
    InvitationStatus.PENDING.value,
    InvitationStatus.SENT.value,
    InvitationStatus.VIEWED.value,
)

UNLIMITED_QUOTA = -1

_OPEN_STATUS_PREDICATE = text("status IN ('PENDING', 'SENT', 'VIEWED')")


# ==================== MODELS ====================

class Promoter(Base):
    """
    Promoter profile attached 1:1 to a user.

    Created inactive on application and activated by an administrator.
    Counters are only ever changed through atomic UPDATE statements.
    """
    __tablename__ = "promoters"
    __table_args__ = (
        CheckConstraint('invitations_used >= 0', name='ck_promoters_invitations_used'),
        CheckConstraint(
            'commission_rate >= 0 AND commission_rate <= 1',
            name='ck_promoters_commission_rate'
        ),
        Index('ix_promoters_is_active', 'is_active'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("users.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False
    )

    business_name: Mapped[str] = mapped_column(String(200), nullable=False)
    territory: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    specialization: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # Tier state
    tier: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=PromoterTier.BRONZE.value,
        comment="BRONZE, SILVER, GOLD, PLATINUM"
    )
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 4),
        nullable=False,
        default=Decimal("0.02")
    )
    invitation_quota: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=10,
        comment="-1 means unlimited"
    )

    # Counters
    invitations_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_invitations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_partners_invited: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_commissions_earned: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0")
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    review_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="promoter_profile")
    invitations: Mapped[List["PartnerInvitation"]] = relationship(
        "PartnerInvitation",
        back_populates="promoter",
    )
    commissions: Mapped[List["PromoterCommission"]] = relationship(
        "PromoterCommission",
        back_populates="promoter",
    )

    @property
    def has_unlimited_quota(self) -> bool:
        return self.invitation_quota == UNLIMITED_QUOTA

    def __repr__(self) -> str:
        return f"<Promoter(business_name='{self.business_name}', tier='{self.tier}')>"


class PartnerInvitation(Base):
    """
    Time-boxed invitation issued by a promoter to a prospective partner.

    Terminal rows (ACCEPTED, DECLINED, EXPIRED) are immutable apart from
    audit fields.
    """
    __tablename__ = "partner_invitations"
    __table_args__ = (
        Index('ix_partner_invitations_promoter_status', 'promoter_id', 'status'),
        Index('ix_partner_invitations_target_email', 'target_email'),
        Index('ix_partner_invitations_expires_at', 'expires_at'),
        # At most one open invitation per target email
        Index(
            'uq_partner_invitations_open_target',
            'target_email',
            unique=True,
            postgresql_where=_OPEN_STATUS_PREDICATE,
            sqlite_where=_OPEN_STATUS_PREDICATE,
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    invitation_code: Mapped[str] = mapped_column(
        String(12),
        unique=True,
        nullable=False,
        index=True,
        comment="12 characters from A-Z0-9"
    )
    promoter_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("promoters.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Target
    target_email: Mapped[str] = mapped_column(String(255), nullable=False)
    target_phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    target_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    target_business_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    personalized_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    invitation_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvitationType.DIRECT.value,
        comment="DIRECT, BULK, PUBLIC, CAMPAIGN"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=InvitationStatus.PENDING.value,
        comment="PENDING, SENT, VIEWED, ACCEPTED, DECLINED, EXPIRED"
    )

    # Promoter rate at creation time; later tier changes do not touch it
    commission_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False)

    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    sent_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    viewed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    declined_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    expired_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    expiration_reason: Mapped[Optional[str]] = mapped_column(
        String(30),
        nullable=True,
        comment="EXPIRED_BY_TIME, EXPIRED_BY_CANCELLATION"
    )

    resulting_partner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("partners.id", ondelete="RESTRICT"),
        unique=True,
        nullable=True
    )

    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    promoter: Mapped["Promoter"] = relationship("Promoter", back_populates="invitations")
    resulting_partner: Mapped[Optional["Partner"]] = relationship("Partner")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_INVITATION_STATUSES

    def is_overdue(self, now: datetime) -> bool:
        return self.is_open and self.expires_at <= now

    def __repr__(self) -> str:
        return f"<PartnerInvitation(code='{self.invitation_code}', status='{self.status}')>"


class PromoterCommission(Base):
    """
    Commission ledger entry.

    Rows are append-only; only the status and its timestamps change
    afterwards.
    """
    __tablename__ = "promoter_commissions"
    __table_args__ = (
        # One bonus per triggering invitation/event
        UniqueConstraint('commission_type', 'reference_id', name='uq_promoter_commissions_type_reference'),
        Index('ix_promoter_commissions_promoter_status', 'promoter_id', 'status'),
        Index('ix_promoter_commissions_created_at', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    promoter_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("promoters.id", ondelete="RESTRICT"),
        nullable=False
    )
    partner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("partners.id", ondelete="RESTRICT"),
        nullable=True
    )

    commission_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="INVITATION_BONUS, ONGOING_SALES, EVENT_BONUS, TIER_BONUS"
    )
    reference_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        nullable=False,
        comment="Triggering invitation or event"
    )

    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 4), nullable=False, default=Decimal("0"))
    base_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CommissionStatus.PENDING.value,
        comment="PENDING, APPROVED, PAID, DISPUTED"
    )
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    extra_data: Mapped[Optional[dict]] = mapped_column("metadata", JSONType, nullable=True)

    period_start: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    period_end: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    payment_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    dispute_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    approved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    disputed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    promoter: Mapped["Promoter"] = relationship("Promoter", back_populates="commissions")

    def __repr__(self) -> str:
        return f"<PromoterCommission(type='{self.commission_type}', amount={self.amount}, status='{self.status}')>"
