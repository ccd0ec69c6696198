"""
Promoter Account Service

Handles the promoter side of the referral program:
- Applications and admin approval
- Quota reservation
- Aggregate counters
- Tier promotion
- Profile and analytics reads
"""

import uuid
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from promoter_hub.db_types import utc_now
from promoter_hub.models.user import User, UserRoleType
from promoter_hub.models.promoter import (
    Promoter,
    PartnerInvitation,
    PromoterTier,
    InvitationStatus,
    UNLIMITED_QUOTA,
)
from promoter_hub.schemas.promoter import PromoterApply, PromoterUpdate
from promoter_hub.services import tier_policy
from promoter_hub.services.commission_service import CommissionService
from promoter_hub.services.exceptions import (
    NotFoundError,
    InvalidStateError,
    QuotaExceededError,
    IneligibleError,
    AlreadyExistsError,
)

logger = logging.getLogger(__name__)

# Role a user takes on once their promoter application is approved
PROMOTED_ROLES = {
    UserRoleType.PARTNER_ADMIN.value: UserRoleType.PARTNER_PROMOTER.value,
    UserRoleType.CUSTOMER.value: UserRoleType.PROMOTER.value,
}


def month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class PromoterService:
    """Service for promoter account operations"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ========================================================================
    # Lookups
    # ========================================================================

    async def get_promoter(self, promoter_id: uuid.UUID, refresh: bool = False) -> Promoter:
        stmt = select(Promoter).where(Promoter.id == promoter_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        promoter = result.scalar_one_or_none()
        if not promoter:
            raise NotFoundError(f"Promoter {promoter_id} not found")
        return promoter

    async def get_promoter_by_user(self, user_id: uuid.UUID) -> Optional[Promoter]:
        result = await self.db.execute(
            select(Promoter).where(Promoter.user_id == user_id)
        )
        return result.scalar_one_or_none()

    # ========================================================================
    # Application
    # ========================================================================

    async def apply_for_promotion(self, user_id: uuid.UUID, data: PromoterApply) -> Promoter:
        """
        Create an inactive BRONZE promoter profile for a user.

        Flow:
        1. User must exist and not already have a profile
        2. PARTNER_USER accounts are not eligible
        3. Quota and rate come from the BRONZE tier
        """
        user = await self.db.get(User, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        if await self.get_promoter_by_user(user_id):
            raise AlreadyExistsError("User already has a promoter profile")

        if user.role == UserRoleType.PARTNER_USER.value:
            raise IneligibleError("Partner users cannot become promoters")

        bronze = tier_policy.tier_settings(PromoterTier.BRONZE)
        promoter = Promoter(
            id=uuid.uuid4(),
            user_id=user_id,
            business_name=data.business_name,
            territory=data.territory,
            specialization=data.specialization,
            tier=PromoterTier.BRONZE.value,
            commission_rate=bronze.commission_rate,
            invitation_quota=bronze.invitation_quota,
            is_active=False,
        )
        self.db.add(promoter)
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent application for the same user won the unique user_id
            await self.db.rollback()
            logger.warning(f"Duplicate promoter application for user {user_id}")
            raise AlreadyExistsError("User already has a promoter profile")
        await self.db.refresh(promoter)

        logger.info(f"Promoter application {promoter.id} submitted by user {user_id}")
        return promoter

    async def list_pending_applications(self) -> List[Promoter]:
        result = await self.db.execute(
            select(Promoter)
            .where(Promoter.is_active == False)  # noqa: E712
            .where(Promoter.approved_at.is_(None))
            .where(Promoter.rejected_at.is_(None))
            .order_by(Promoter.created_at.desc())
        )
        return list(result.scalars().all())

    async def approve_application(
        self,
        promoter_id: uuid.UUID,
        approved: bool,
        notes: Optional[str] = None,
    ) -> Promoter:
        """
        Approve or reject a pending application.

        Approval activates the profile and promotes the user's role in the
        same unit of work. Rejection leaves the profile inactive.
        """
        promoter = await self.get_promoter(promoter_id)
        if promoter.is_active or promoter.approved_at or promoter.rejected_at:
            raise InvalidStateError("Promoter application has already been reviewed")

        now = utc_now()
        pending = (
            Promoter.id == promoter_id,
            Promoter.is_active == False,  # noqa: E712
            Promoter.approved_at.is_(None),
            Promoter.rejected_at.is_(None),
        )
        try:
            if approved:
                values = {"is_active": True, "approved_at": now, "review_notes": notes}
            else:
                values = {"rejected_at": now, "review_notes": notes}

            result = await self.db.execute(
                update(Promoter)
                .where(*pending)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateError("Promoter application has already been reviewed")

            if approved:
                user = await self.db.get(User, promoter.user_id)
                new_role = PROMOTED_ROLES.get(user.role)
                if new_role:
                    user.role = new_role

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(promoter)
        if approved:
            logger.info(f"Promoter {promoter_id} approved")
        else:
            logger.info(f"Promoter application {promoter_id} rejected: {notes or 'no notes'}")
        return promoter

    async def set_tier(self, promoter_id: uuid.UUID, tier: PromoterTier) -> Promoter:
        """Manual tier override; issued invitations keep their rate snapshot."""
        await self.get_promoter(promoter_id)
        settings_for_tier = tier_policy.tier_settings(tier)
        await self.db.execute(
            update(Promoter)
            .where(Promoter.id == promoter_id)
            .values(
                tier=PromoterTier(tier).value,
                invitation_quota=settings_for_tier.invitation_quota,
                commission_rate=settings_for_tier.commission_rate,
            )
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        logger.info(f"Promoter {promoter_id} tier set to {PromoterTier(tier).value}")
        return await self.get_promoter(promoter_id, refresh=True)

    # ========================================================================
    # Counters (callers own the transaction)
    # ========================================================================

    async def reserve_invitation_slot(self, promoter_id: uuid.UUID) -> None:
        """
        Consume one invitation slot with a single conditional UPDATE.

        Must be the first write of the caller's unit of work so concurrent
        reservations serialize on it.
        """
        result = await self.db.execute(
            update(Promoter)
            .where(
                Promoter.id == promoter_id,
                Promoter.is_active == True,  # noqa: E712
                or_(
                    Promoter.invitation_quota == UNLIMITED_QUOTA,
                    Promoter.invitations_used < Promoter.invitation_quota,
                ),
            )
            .values(invitations_used=Promoter.invitations_used + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        promoter = await self.get_promoter(promoter_id, refresh=True)
        if not promoter.is_active:
            raise InvalidStateError("Promoter is not active")
        logger.warning(
            f"Promoter {promoter_id} quota exhausted "
            f"({promoter.invitations_used}/{promoter.invitation_quota})"
        )
        raise QuotaExceededError(
            f"Invitation quota of {promoter.invitation_quota} reached for tier {promoter.tier}"
        )

    async def record_successful_invitation(self, promoter_id: uuid.UUID) -> None:
        await self.db.execute(
            update(Promoter)
            .where(Promoter.id == promoter_id)
            .values(
                total_partners_invited=Promoter.total_partners_invited + 1,
                successful_invitations=Promoter.successful_invitations + 1,
            )
            .execution_options(synchronize_session=False)
        )

    async def add_commission_earnings(self, promoter_id: uuid.UUID, amount: Decimal) -> None:
        await self.db.execute(
            update(Promoter)
            .where(Promoter.id == promoter_id)
            .values(total_commissions_earned=Promoter.total_commissions_earned + amount)
            .execution_options(synchronize_session=False)
        )

    async def evaluate_tier_promotion(self, promoter_id: uuid.UUID) -> Optional[PromoterTier]:
        """
        Promote the promoter as far as both thresholds allow.

        Returns the new tier, or None when nothing changed. Quota and rate
        are updated in the same statement as the tier.
        """
        promoter = await self.get_promoter(promoter_id, refresh=True)
        target = tier_policy.highest_qualifying_tier(
            promoter.tier,
            promoter.successful_invitations,
            promoter.total_commissions_earned,
        )
        if target.value == promoter.tier:
            return None

        granted = tier_policy.tier_settings(target)
        result = await self.db.execute(
            update(Promoter)
            .where(Promoter.id == promoter_id, Promoter.tier == promoter.tier)
            .values(
                tier=target.value,
                invitation_quota=granted.invitation_quota,
                commission_rate=granted.commission_rate,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return None

        logger.info(f"Promoter {promoter_id} promoted from {promoter.tier} to {target.value}")
        return target

    # ========================================================================
    # Profile
    # ========================================================================

    async def get_profile(self, user_id: uuid.UUID) -> dict:
        promoter = await self.get_promoter_by_user(user_id)
        if not promoter:
            raise NotFoundError("Promoter profile not found")

        invitation_count = await self.db.execute(
            select(func.count(PartnerInvitation.id)).where(
                PartnerInvitation.promoter_id == promoter.id
            )
        )
        commissions = CommissionService(self.db)
        now = utc_now()
        monthly = await commissions.get_total(promoter.id, since=month_start(now))
        commission_count = await commissions.count(promoter.id)

        return {
            "promoter": promoter,
            "invitation_count": invitation_count.scalar() or 0,
            "commission_count": commission_count,
            "monthly_commissions": monthly,
        }

    async def update_profile(self, user_id: uuid.UUID, data: PromoterUpdate) -> Promoter:
        promoter = await self.get_promoter_by_user(user_id)
        if not promoter:
            raise NotFoundError("Promoter profile not found")

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(promoter, field, value)

        await self.db.commit()
        await self.db.refresh(promoter)
        return promoter

    # ========================================================================
    # Analytics
    # ========================================================================

    async def get_analytics(self, promoter_id: uuid.UUID) -> dict:
        """
        Invitation and commission overview plus progress towards the next tier.
        """
        promoter = await self.get_promoter(promoter_id, refresh=True)
        now = utc_now()
        since = month_start(now)

        total_result = await self.db.execute(
            select(func.count(PartnerInvitation.id)).where(
                PartnerInvitation.promoter_id == promoter_id
            )
        )
        total_invitations = total_result.scalar() or 0

        monthly_result = await self.db.execute(
            select(func.count(PartnerInvitation.id)).where(
                PartnerInvitation.promoter_id == promoter_id,
                PartnerInvitation.created_at >= since,
            )
        )
        monthly_invitations = monthly_result.scalar() or 0

        accepted_result = await self.db.execute(
            select(func.count(PartnerInvitation.id)).where(
                PartnerInvitation.promoter_id == promoter_id,
                PartnerInvitation.status == InvitationStatus.ACCEPTED.value,
            )
        )
        successful_invitations = accepted_result.scalar() or 0

        conversion_rate = 0.0
        if total_invitations > 0:
            conversion_rate = round(successful_invitations / total_invitations * 100, 2)

        commissions = CommissionService(self.db)
        monthly_commissions = await commissions.get_total(promoter_id, since=since)
        total_commissions = await commissions.get_total(promoter_id)
        by_type = await commissions.get_totals_by_type(promoter_id)

        if promoter.has_unlimited_quota:
            quota_percentage = 0.0
        elif promoter.invitation_quota > 0:
            quota_percentage = round(promoter.invitations_used / promoter.invitation_quota * 100, 2)
        else:
            quota_percentage = 100.0

        return {
            "overview": {
                "total_invitations": total_invitations,
                "monthly_invitations": monthly_invitations,
                "successful_invitations": successful_invitations,
                "conversion_rate": conversion_rate,
                "monthly_commissions": monthly_commissions,
                "total_commissions": total_commissions,
                "current_tier": promoter.tier,
                "quota_usage": {
                    "used": promoter.invitations_used,
                    "total": promoter.invitation_quota,
                    "percentage": quota_percentage,
                },
                "commissions_by_type": by_type,
            },
            "tier_progress": self._tier_progress(promoter),
        }

    def _tier_progress(self, promoter: Promoter) -> Optional[dict]:
        upcoming = tier_policy.next_tier(promoter.tier)
        if upcoming is None:
            return None

        requirements = tier_policy.tier_requirements(upcoming)
        invitations_pct = min(
            100.0,
            round(promoter.successful_invitations / requirements.successful_invitations * 100, 2),
        )
        commissions_pct = min(
            100.0,
            round(float(promoter.total_commissions_earned / requirements.total_commissions * 100), 2),
        )
        return {
            "current_tier": promoter.tier,
            "next_tier": upcoming.value,
            "requirements": {
                "successful_invitations": requirements.successful_invitations,
                "total_commissions": requirements.total_commissions,
            },
            "progress": {
                "invitations": invitations_pct,
                "commissions": commissions_pct,
            },
        }
