"""Partner storefront rows created when an invitation converts."""
import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional, List

from sqlalchemy import String, Boolean, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from promoter_hub.database import Base
from promoter_hub.db_types import UUIDType, UTCDateTime, utc_now

if TYPE_CHECKING:
    from promoter_hub.models.user import User


class DocumentType(str, Enum):
    """Brazilian tax document kinds."""
    CPF = "CPF"    # Individual
    CNPJ = "CNPJ"  # Company


class Partner(Base):
    """A store partner selling on the marketplace."""
    __tablename__ = "partners"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)
    document: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="CPF, CNPJ"
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        default=utc_now,
        onupdate=utc_now,
        nullable=False
    )

    # Relationships
    addresses: Mapped[List["Address"]] = relationship(
        "Address",
        back_populates="partner",
    )
    users: Mapped[List["User"]] = relationship("User", back_populates="partner")

    def __repr__(self) -> str:
        return f"<Partner(name='{self.name}', email='{self.email}')>"


class Address(Base):
    __tablename__ = "addresses"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    partner_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("partners.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    street: Mapped[str] = mapped_column(String(255), nullable=False)
    number: Mapped[str] = mapped_column(String(20), nullable=False)
    complement: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    neighborhood: Mapped[str] = mapped_column(String(100), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(2), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(9), nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utc_now, nullable=False)

    partner: Mapped["Partner"] = relationship("Partner", back_populates="addresses")
