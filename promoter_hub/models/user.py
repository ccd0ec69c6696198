import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import String, Boolean, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from promoter_hub.database import Base
from promoter_hub.db_types import UUIDType, UTCDateTime, utc_now

if TYPE_CHECKING:
    from promoter_hub.models.partner import Partner
    from promoter_hub.models.promoter import Promoter


class UserRoleType(str, Enum):
    """Marketplace account roles (stored as VARCHAR)."""
    ADMIN = "ADMIN"
    PARTNER_ADMIN = "PARTNER_ADMIN"
    PARTNER_USER = "PARTNER_USER"
    PROMOTER = "PROMOTER"
    PARTNER_PROMOTER = "PARTNER_PROMOTER"
    CUSTOMER = "CUSTOMER"


class User(Base):
    """
    Marketplace account.

    Only the columns the referral engine reads or writes live here: role for
    capability checks, and the fields filled in when an accepted invitation
    creates the partner's admin account.
    """
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    role: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=UserRoleType.CUSTOMER.value,
        comment="ADMIN, PARTNER_ADMIN, PARTNER_USER, PROMOTER, PARTNER_PROMOTER, CUSTOMER"
    )

    partner_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("partners.id", ondelete="RESTRICT"),
        nullable=True
    )

    # Status flags
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    partner: Mapped[Optional["Partner"]] = relationship("Partner", back_populates="users")
    promoter_profile: Mapped[Optional["Promoter"]] = relationship(
        "Promoter",
        back_populates="user",
        uselist=False
    )

    def __repr__(self) -> str:
        return f"<User(email='{self.email}', role='{self.role}')>"
