"""
Tier Policy

Static lookup of what each promoter tier grants (invitation quota and
commission rate) and what it takes to reach it (successful invitations and
cumulative commissions, both required).
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from promoter_hub.models.promoter import PromoterTier, UNLIMITED_QUOTA


@dataclass(frozen=True)
class TierSettings:
    invitation_quota: int
    commission_rate: Decimal


@dataclass(frozen=True)
class TierRequirements:
    successful_invitations: int
    total_commissions: Decimal


TIER_ORDER = [
    PromoterTier.BRONZE,
    PromoterTier.SILVER,
    PromoterTier.GOLD,
    PromoterTier.PLATINUM,
]

TIER_SETTINGS = {
    PromoterTier.BRONZE: TierSettings(10, Decimal("0.02")),
    PromoterTier.SILVER: TierSettings(25, Decimal("0.03")),
    PromoterTier.GOLD: TierSettings(50, Decimal("0.04")),
    PromoterTier.PLATINUM: TierSettings(UNLIMITED_QUOTA, Decimal("0.05")),
}

TIER_REQUIREMENTS = {
    PromoterTier.BRONZE: TierRequirements(0, Decimal("0")),
    PromoterTier.SILVER: TierRequirements(25, Decimal("5000")),
    PromoterTier.GOLD: TierRequirements(100, Decimal("15000")),
    PromoterTier.PLATINUM: TierRequirements(500, Decimal("50000")),
}


def _coerce(tier) -> PromoterTier:
    """Unknown tiers fall back to BRONZE."""
    try:
        return PromoterTier(tier)
    except ValueError:
        return PromoterTier.BRONZE


def tier_settings(tier) -> TierSettings:
    """Quota and commission rate granted by a tier."""
    return TIER_SETTINGS[_coerce(tier)]


def tier_requirements(tier) -> TierRequirements:
    return TIER_REQUIREMENTS[_coerce(tier)]


def next_tier(tier) -> Optional[PromoterTier]:
    """The tier after `tier`, or None at the top."""
    index = TIER_ORDER.index(_coerce(tier))
    if index + 1 < len(TIER_ORDER):
        return TIER_ORDER[index + 1]
    return None


def qualifies_for(tier, successful_invitations: int, total_commissions: Decimal) -> bool:
    requirements = tier_requirements(tier)
    return (
        successful_invitations >= requirements.successful_invitations
        and total_commissions >= requirements.total_commissions
    )


def highest_qualifying_tier(
    current_tier,
    successful_invitations: int,
    total_commissions: Decimal,
) -> PromoterTier:
    """
    Walk up from `current_tier` while the next tier's thresholds are met.

    Never returns a tier below `current_tier`.
    """
    tier = _coerce(current_tier)
    candidate = next_tier(tier)
    while candidate is not None and qualifies_for(candidate, successful_invitations, total_commissions):
        tier = candidate
        candidate = next_tier(tier)
    return tier
