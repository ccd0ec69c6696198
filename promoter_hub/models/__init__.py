# Import all models so they register with Base.metadata
from promoter_hub.models.user import User, UserRoleType
from promoter_hub.models.partner import Partner, Address, DocumentType
from promoter_hub.models.promoter import (
    Promoter,
    PartnerInvitation,
    PromoterCommission,
    PromoterTier,
    InvitationStatus,
    InvitationType,
    ExpirationReason,
    CommissionType,
    CommissionStatus,
)

__all__ = [
    "User",
    "UserRoleType",
    "Partner",
    "Address",
    "DocumentType",
    "Promoter",
    "PartnerInvitation",
    "PromoterCommission",
    "PromoterTier",
    "InvitationStatus",
    "InvitationType",
    "ExpirationReason",
    "CommissionType",
    "CommissionStatus",
]
