# Services module
from promoter_hub.services import tier_policy
from promoter_hub.services.commission_service import CommissionService
from promoter_hub.services.invitation_service import InvitationService
from promoter_hub.services.promoter_service import PromoterService
from promoter_hub.services.referral_service import ReferralService

__all__ = [
    "tier_policy",
    "CommissionService",
    "InvitationService",
    "PromoterService",
    "ReferralService",
]
