"""
Tests for the commission ledger: status transitions and aggregates.
"""
import uuid
from decimal import Decimal

import pytest
import pytest_asyncio

from promoter_hub.models.promoter import CommissionStatus, CommissionType
from promoter_hub.services.commission_service import CommissionService
from promoter_hub.services.referral_service import ReferralService
from promoter_hub.services.exceptions import NotFoundError, InvalidStateError

from tests.conftest import invitation_request, accept_request


@pytest_asyncio.fixture
async def converted(make_promoter, session_factory):
    """A promoter with one accepted invitation and its PENDING bonus"""
    promoter = await make_promoter()
    async with session_factory() as session:
        service = ReferralService(session)
        invitation, _ = await service.create_invitation(promoter.id, invitation_request())
        result = await service.accept_invitation(invitation.invitation_code, accept_request())
    return promoter, result


class TestTransitions:
    """PENDING -> APPROVED -> PAID, with DISPUTED as a side exit"""

    @pytest.mark.asyncio
    async def test_approve_then_pay(self, db, converted):
        _, result = converted
        service = CommissionService(db)

        approved = await service.approve_commission(result["commission_id"])
        assert approved.status == CommissionStatus.APPROVED.value
        assert approved.approved_at is not None

        paid = await service.mark_commission_paid(result["commission_id"], payment_reference="PIX-001")
        assert paid.status == CommissionStatus.PAID.value
        assert paid.paid_at is not None
        assert paid.payment_reference == "PIX-001"

    @pytest.mark.asyncio
    async def test_cannot_pay_pending(self, db, converted):
        _, result = converted

        with pytest.raises(InvalidStateError):
            await CommissionService(db).mark_commission_paid(result["commission_id"])

    @pytest.mark.asyncio
    async def test_cannot_approve_twice(self, db, converted):
        _, result = converted
        service = CommissionService(db)
        await service.approve_commission(result["commission_id"])

        with pytest.raises(InvalidStateError):
            await service.approve_commission(result["commission_id"])

    @pytest.mark.asyncio
    async def test_dispute_pending(self, db, converted):
        _, result = converted

        disputed = await CommissionService(db).dispute_commission(
            result["commission_id"], reason="Partner never traded"
        )

        assert disputed.status == CommissionStatus.DISPUTED.value
        assert disputed.dispute_reason == "Partner never traded"
        assert disputed.disputed_at is not None

    @pytest.mark.asyncio
    async def test_paid_cannot_be_disputed(self, db, converted):
        _, result = converted
        service = CommissionService(db)
        await service.approve_commission(result["commission_id"])
        await service.mark_commission_paid(result["commission_id"])

        with pytest.raises(InvalidStateError):
            await service.dispute_commission(result["commission_id"])

    @pytest.mark.asyncio
    async def test_unknown_commission(self, db):
        with pytest.raises(NotFoundError):
            await CommissionService(db).approve_commission(uuid.uuid4())


class TestQueries:

    @pytest.mark.asyncio
    async def test_list_with_filters(self, db, converted):
        promoter, result = converted
        service = CommissionService(db)

        items, total = await service.list_commissions(promoter.id)
        assert total == 1
        assert items[0].id == result["commission_id"]
        assert items[0].partner_id == result["partner_id"]

        items, total = await service.list_commissions(promoter.id, status=CommissionStatus.PAID.value)
        assert total == 0
        assert items == []

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_promoter(self, db, converted, make_promoter):
        other = await make_promoter(business_name="Other Promoter")

        items, total = await CommissionService(db).list_commissions(other.id)

        assert total == 0

    @pytest.mark.asyncio
    async def test_totals(self, db, converted):
        promoter, _ = converted
        service = CommissionService(db)

        assert await service.get_total(promoter.id) == Decimal("15.00")
        assert await service.count(promoter.id) == 1
        by_type = await service.get_totals_by_type(promoter.id)
        assert by_type == {
            CommissionType.INVITATION_BONUS.value: {"amount": Decimal("15.00"), "count": 1}
        }
