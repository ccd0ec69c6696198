from enum import Enum
from typing import Optional

from promoter_hub.models.user import User, UserRoleType
from promoter_hub.models.promoter import Promoter


class Capability(str, Enum):
    """Actions guarded at the API boundary."""
    APPLY = "APPLY"
    MANAGE_INVITATIONS = "MANAGE_INVITATIONS"
    VIEW_COMMISSIONS = "VIEW_COMMISSIONS"
    ADMINISTER = "ADMINISTER"


PROMOTER_ROLES = {
    UserRoleType.PROMOTER.value,
    UserRoleType.PARTNER_PROMOTER.value,
}


class PermissionChecker:
    """
    Single capability check for the referral API.

    Decisions depend only on the caller's role, whether they own a promoter
    profile, and whether that profile is active.
    """

    def __init__(self, user: User, promoter: Optional[Promoter] = None):
        self.user = user
        self.promoter = promoter

    @property
    def role(self) -> str:
        return self.user.role

    @property
    def owns_promoter_profile(self) -> bool:
        return self.promoter is not None

    @property
    def promoter_active(self) -> bool:
        return self.promoter is not None and self.promoter.is_active

    def is_admin(self) -> bool:
        return self.role == UserRoleType.ADMIN.value

    def can(self, capability: Capability) -> bool:
        if capability == Capability.ADMINISTER:
            return self.is_admin()

        if capability == Capability.APPLY:
            return (
                self.role != UserRoleType.PARTNER_USER.value
                and not self.owns_promoter_profile
            )

        if capability in (Capability.MANAGE_INVITATIONS, Capability.VIEW_COMMISSIONS):
            return (
                self.role in PROMOTER_ROLES
                and self.owns_promoter_profile
                and self.promoter_active
            )

        return False

    def denial_reason(self, capability: Capability) -> str:
        if capability == Capability.ADMINISTER:
            return "Administrator access required"
        if capability == Capability.APPLY:
            if self.owns_promoter_profile:
                return "User already has a promoter profile"
            return "Partner users cannot become promoters"
        if not self.owns_promoter_profile:
            return "Promoter profile required"
        if not self.promoter_active:
            return "Promoter profile is not active"
        return "Promoter role required"
