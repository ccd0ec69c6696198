"""
Tests for promoter applications, quota reservation, tier promotion and analytics.
"""
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import select, func

from promoter_hub.models.user import User, UserRoleType
from promoter_hub.models.promoter import Promoter, PromoterTier, UNLIMITED_QUOTA
from promoter_hub.schemas.promoter import PromoterApply, PromoterUpdate
from promoter_hub.services.promoter_service import PromoterService
from promoter_hub.services.exceptions import (
    NotFoundError,
    InvalidStateError,
    QuotaExceededError,
    IneligibleError,
    AlreadyExistsError,
)


def application(name: str = "Neighbourhood Deals") -> PromoterApply:
    return PromoterApply(business_name=name, territory="Campinas", specialization="Bakeries")


class TestApplyForPromotion:
    """Application rules"""

    @pytest.mark.asyncio
    async def test_creates_inactive_bronze_profile(self, db, make_user):
        user = await make_user(role=UserRoleType.CUSTOMER)

        promoter = await PromoterService(db).apply_for_promotion(user.id, application())

        assert promoter.is_active is False
        assert promoter.tier == PromoterTier.BRONZE.value
        assert promoter.invitation_quota == 10
        assert promoter.commission_rate == Decimal("0.02")
        assert promoter.invitations_used == 0
        assert promoter.approved_at is None

    @pytest.mark.asyncio
    async def test_second_application_is_rejected(self, db, make_user):
        user = await make_user()
        service = PromoterService(db)
        await service.apply_for_promotion(user.id, application())

        with pytest.raises(AlreadyExistsError):
            await service.apply_for_promotion(user.id, application("Another Name"))

    @pytest.mark.asyncio
    async def test_partner_user_is_ineligible(self, db, make_user):
        user = await make_user(role=UserRoleType.PARTNER_USER)

        with pytest.raises(IneligibleError):
            await PromoterService(db).apply_for_promotion(user.id, application())

    @pytest.mark.asyncio
    async def test_partner_admin_may_apply(self, db, make_user):
        user = await make_user(role=UserRoleType.PARTNER_ADMIN)

        promoter = await PromoterService(db).apply_for_promotion(user.id, application())

        assert promoter.user_id == user.id

    @pytest.mark.asyncio
    async def test_unknown_user(self, db):
        import uuid

        with pytest.raises(NotFoundError):
            await PromoterService(db).apply_for_promotion(uuid.uuid4(), application())

    @pytest.mark.asyncio
    async def test_concurrent_applications_create_one_profile(self, make_user, session_factory, monkeypatch):
        user = await make_user(role=UserRoleType.CUSTOMER)
        checked = 0
        both_checked = asyncio.Event()

        async def apply():
            async with session_factory() as session:
                service = PromoterService(session)
                lookup = service.get_promoter_by_user

                async def lookup_then_wait(*args, **kwargs):
                    nonlocal checked
                    found = await lookup(*args, **kwargs)
                    checked += 1
                    if checked == 2:
                        both_checked.set()
                    await both_checked.wait()
                    return found

                monkeypatch.setattr(service, "get_promoter_by_user", lookup_then_wait)
                return await service.apply_for_promotion(user.id, application())

        results = await asyncio.gather(apply(), apply(), return_exceptions=True)

        successes = [r for r in results if isinstance(r, Promoter)]
        failures = [r for r in results if isinstance(r, BaseException)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], AlreadyExistsError)
        async with session_factory() as session:
            result = await session.execute(
                select(func.count()).select_from(Promoter).where(Promoter.user_id == user.id)
            )
            assert result.scalar() == 1


class TestApproveApplication:
    """Admin review of pending applications"""

    @pytest.mark.asyncio
    async def test_approval_activates_and_promotes_role(self, db, session_factory, make_user):
        user = await make_user(role=UserRoleType.CUSTOMER)
        service = PromoterService(db)
        promoter = await service.apply_for_promotion(user.id, application())

        approved = await service.approve_application(promoter.id, approved=True, notes="Looks good")

        assert approved.is_active is True
        assert approved.approved_at is not None
        assert approved.review_notes == "Looks good"
        async with session_factory() as session:
            stored_user = await session.get(User, user.id)
            assert stored_user.role == UserRoleType.PROMOTER.value

    @pytest.mark.asyncio
    async def test_partner_admin_becomes_partner_promoter(self, db, session_factory, make_user):
        user = await make_user(role=UserRoleType.PARTNER_ADMIN)
        service = PromoterService(db)
        promoter = await service.apply_for_promotion(user.id, application())

        await service.approve_application(promoter.id, approved=True)

        async with session_factory() as session:
            stored_user = await session.get(User, user.id)
            assert stored_user.role == UserRoleType.PARTNER_PROMOTER.value

    @pytest.mark.asyncio
    async def test_rejection_keeps_profile_inactive(self, db, make_user):
        user = await make_user()
        service = PromoterService(db)
        promoter = await service.apply_for_promotion(user.id, application())

        rejected = await service.approve_application(promoter.id, approved=False, notes="Incomplete")

        assert rejected.is_active is False
        assert rejected.rejected_at is not None
        assert await service.list_pending_applications() == []

    @pytest.mark.asyncio
    async def test_cannot_review_twice(self, db, make_user):
        user = await make_user()
        service = PromoterService(db)
        promoter = await service.apply_for_promotion(user.id, application())
        await service.approve_application(promoter.id, approved=True)

        with pytest.raises(InvalidStateError):
            await service.approve_application(promoter.id, approved=False)

    @pytest.mark.asyncio
    async def test_pending_list_only_has_unreviewed(self, db, make_user, make_promoter):
        await make_promoter()
        user = await make_user()
        service = PromoterService(db)
        pending = await service.apply_for_promotion(user.id, application())

        items = await service.list_pending_applications()

        assert [p.id for p in items] == [pending.id]


class TestReserveInvitationSlot:
    """Quota is consumed with a single conditional update"""

    @pytest.mark.asyncio
    async def test_increments_usage(self, db, make_promoter):
        promoter = await make_promoter(invitations_used=3)
        service = PromoterService(db)

        await service.reserve_invitation_slot(promoter.id)
        await db.commit()

        refreshed = await service.get_promoter(promoter.id, refresh=True)
        assert refreshed.invitations_used == 4

    @pytest.mark.asyncio
    async def test_full_quota_is_rejected(self, db, make_promoter):
        promoter = await make_promoter(invitations_used=10)

        with pytest.raises(QuotaExceededError):
            await PromoterService(db).reserve_invitation_slot(promoter.id)

    @pytest.mark.asyncio
    async def test_inactive_promoter_is_rejected(self, db, make_promoter):
        promoter = await make_promoter(is_active=False)

        with pytest.raises(InvalidStateError):
            await PromoterService(db).reserve_invitation_slot(promoter.id)

    @pytest.mark.asyncio
    async def test_unlimited_quota_never_runs_out(self, db, make_promoter):
        promoter = await make_promoter(tier=PromoterTier.PLATINUM, invitations_used=5000)
        assert promoter.invitation_quota == UNLIMITED_QUOTA
        service = PromoterService(db)

        await service.reserve_invitation_slot(promoter.id)
        await db.commit()

        refreshed = await service.get_promoter(promoter.id, refresh=True)
        assert refreshed.invitations_used == 5001


class TestTierChanges:

    @pytest.mark.asyncio
    async def test_promotion_updates_quota_and_rate(self, db, make_promoter):
        promoter = await make_promoter(successful_invitations=25, total_commissions_earned=Decimal("5000"))
        service = PromoterService(db)

        new_tier = await service.evaluate_tier_promotion(promoter.id)
        await db.commit()

        assert new_tier == PromoterTier.SILVER
        refreshed = await service.get_promoter(promoter.id, refresh=True)
        assert refreshed.tier == PromoterTier.SILVER.value
        assert refreshed.invitation_quota == 25
        assert refreshed.commission_rate == Decimal("0.03")

    @pytest.mark.asyncio
    async def test_no_change_below_thresholds(self, db, make_promoter):
        promoter = await make_promoter(successful_invitations=30, total_commissions_earned=Decimal("10"))

        assert await PromoterService(db).evaluate_tier_promotion(promoter.id) is None

    @pytest.mark.asyncio
    async def test_manual_tier_override(self, db, make_promoter):
        promoter = await make_promoter(invitations_used=7)

        updated = await PromoterService(db).set_tier(promoter.id, PromoterTier.GOLD)

        assert updated.tier == PromoterTier.GOLD.value
        assert updated.invitation_quota == 50
        assert updated.commission_rate == Decimal("0.04")
        assert updated.invitations_used == 7


class TestProfileAndAnalytics:

    @pytest.mark.asyncio
    async def test_profile_requires_promoter(self, db, make_user):
        user = await make_user()

        with pytest.raises(NotFoundError):
            await PromoterService(db).get_profile(user.id)

    @pytest.mark.asyncio
    async def test_profile_counts(self, db, make_promoter):
        promoter = await make_promoter()

        profile = await PromoterService(db).get_profile(promoter.user_id)

        assert profile["promoter"].id == promoter.id
        assert profile["invitation_count"] == 0
        assert profile["commission_count"] == 0
        assert profile["monthly_commissions"] == Decimal("0")

    @pytest.mark.asyncio
    async def test_update_profile(self, db, make_promoter):
        promoter = await make_promoter()

        updated = await PromoterService(db).update_profile(
            promoter.user_id, PromoterUpdate(territory="Rio de Janeiro")
        )

        assert updated.territory == "Rio de Janeiro"
        assert updated.business_name == "Acme Referrals"

    @pytest.mark.asyncio
    async def test_analytics_for_new_promoter(self, db, make_promoter):
        promoter = await make_promoter(invitations_used=5)

        analytics = await PromoterService(db).get_analytics(promoter.id)

        overview = analytics["overview"]
        assert overview["total_invitations"] == 0
        assert overview["conversion_rate"] == 0.0
        assert overview["current_tier"] == "BRONZE"
        assert overview["quota_usage"] == {"used": 5, "total": 10, "percentage": 50.0}
        assert analytics["tier_progress"]["next_tier"] == "SILVER"
        assert analytics["tier_progress"]["progress"] == {"invitations": 0.0, "commissions": 0.0}

    @pytest.mark.asyncio
    async def test_platinum_has_no_tier_progress(self, db, make_promoter):
        promoter = await make_promoter(tier=PromoterTier.PLATINUM)

        analytics = await PromoterService(db).get_analytics(promoter.id)

        assert analytics["tier_progress"] is None
        assert analytics["overview"]["quota_usage"]["percentage"] == 0.0
