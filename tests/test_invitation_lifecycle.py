"""
Tests for invitation status transitions and lazy expiry.
"""
from datetime import timedelta

import pytest

from promoter_hub.db_types import utc_now
from promoter_hub.models.promoter import InvitationStatus, ExpirationReason
from promoter_hub.schemas.invitation import InvitationUpdate
from promoter_hub.services.invitation_service import InvitationService
from promoter_hub.services.referral_service import ReferralService
from promoter_hub.services.exceptions import (
    NotFoundError,
    InvalidStateError,
    ExpiredError,
)

from tests.conftest import invitation_request, accept_request


async def issue(session_factory, promoter_id, email="store@example.com", **overrides):
    async with session_factory() as session:
        invitation, _ = await ReferralService(session).create_invitation(
            promoter_id, invitation_request(email, **overrides)
        )
        return invitation


class TestView:
    """Opening the public link"""

    @pytest.mark.asyncio
    async def test_pending_becomes_viewed(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)

        viewed = await InvitationService(db).view(invitation.invitation_code)

        assert viewed.status == InvitationStatus.VIEWED.value
        assert viewed.viewed_at is not None
        assert viewed.promoter.user.name == "Paula Promoter"

    @pytest.mark.asyncio
    async def test_second_view_keeps_first_timestamp(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        service = InvitationService(db)
        first = await service.view(invitation.invitation_code)
        first_viewed_at = first.viewed_at

        second = await service.view(invitation.invitation_code)

        assert second.status == InvitationStatus.VIEWED.value
        assert second.viewed_at == first_viewed_at

    @pytest.mark.asyncio
    async def test_unknown_code(self, db):
        with pytest.raises(NotFoundError):
            await InvitationService(db).view("NOSUCHCODE00")

    @pytest.mark.asyncio
    async def test_public_view_exposes_promoter(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)

        public = await ReferralService(db).get_invitation_by_code(invitation.invitation_code)

        assert public["target_email"] == "store@example.com"
        assert public["promoter"]["business_name"] == "Acme Referrals"
        assert public["promoter"]["user"]["id"] == promoter.user_id

    @pytest.mark.asyncio
    async def test_cancelled_invitation_is_invalid_state(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        service = InvitationService(db)
        await service.cancel(promoter.id, invitation.id)

        with pytest.raises(InvalidStateError):
            await service.view(invitation.invitation_code)

        stored = await service.get_by_id(invitation.id, refresh=True)
        assert stored.status == InvitationStatus.EXPIRED.value
        assert stored.expiration_reason == ExpirationReason.EXPIRED_BY_CANCELLATION.value
        assert stored.viewed_at is None

    @pytest.mark.asyncio
    async def test_accepted_invitation_is_not_viewed_again(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        async with session_factory() as session:
            await ReferralService(session).accept_invitation(invitation.invitation_code, accept_request())
        service = InvitationService(db)

        with pytest.raises(InvalidStateError):
            await service.view(invitation.invitation_code)

        stored = await service.get_by_id(invitation.id, refresh=True)
        assert stored.status == InvitationStatus.ACCEPTED.value
        assert stored.viewed_at is None
        assert stored.resulting_partner_id is not None


class TestDecline:

    @pytest.mark.asyncio
    async def test_decline_is_terminal(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        service = InvitationService(db)

        declined = await service.decline(invitation.invitation_code)

        assert declined.status == InvitationStatus.DECLINED.value
        assert declined.declined_at is not None
        with pytest.raises(InvalidStateError):
            await service.decline(invitation.invitation_code)
        with pytest.raises(InvalidStateError):
            await service.view(invitation.invitation_code)

    @pytest.mark.asyncio
    async def test_viewed_invitation_can_be_declined(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        service = InvitationService(db)
        await service.view(invitation.invitation_code)

        declined = await service.decline(invitation.invitation_code)

        assert declined.status == InvitationStatus.DECLINED.value


class TestExpiry:
    """Overdue invitations are expired when touched"""

    @pytest.mark.asyncio
    async def test_view_after_expiry_persists_expired(
        self, db, make_promoter, session_factory, force_expired
    ):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        await force_expired(invitation.id)
        service = InvitationService(db)

        with pytest.raises(ExpiredError):
            await service.view(invitation.invitation_code)

        stored = await service.get_by_id(invitation.id, refresh=True)
        assert stored.status == InvitationStatus.EXPIRED.value
        assert stored.expiration_reason == ExpirationReason.EXPIRED_BY_TIME.value
        assert stored.expired_at is not None

    @pytest.mark.asyncio
    async def test_decline_after_expiry(self, db, make_promoter, session_factory, force_expired):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        await force_expired(invitation.id)

        with pytest.raises(ExpiredError):
            await InvitationService(db).decline(invitation.invitation_code)

    @pytest.mark.asyncio
    async def test_listing_sweeps_overdue(self, db, make_promoter, session_factory, force_expired):
        promoter = await make_promoter()
        stale = await issue(session_factory, promoter.id, "stale@example.com")
        await issue(session_factory, promoter.id, "fresh@example.com")
        await force_expired(stale.id)

        items, total = await InvitationService(db).list_invitations(promoter.id)

        assert total == 2
        statuses = {item.target_email: item.status for item in items}
        assert statuses["stale@example.com"] == InvitationStatus.EXPIRED.value
        assert statuses["fresh@example.com"] == InvitationStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_listing_filters_by_status(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        first = await issue(session_factory, promoter.id, "one@example.com")
        await issue(session_factory, promoter.id, "two@example.com")
        await InvitationService(db).decline(first.invitation_code)

        items, total = await InvitationService(db).list_invitations(
            promoter.id, status=InvitationStatus.PENDING.value
        )

        assert total == 1
        assert items[0].target_email == "two@example.com"


class TestPromoterActions:
    """Promoter-side transitions on their own invitations"""

    @pytest.mark.asyncio
    async def test_mark_sent(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        service = InvitationService(db)

        sent = await service.mark_sent(promoter.id, invitation.id)

        assert sent.status == InvitationStatus.SENT.value
        assert sent.sent_at is not None
        with pytest.raises(InvalidStateError):
            await service.mark_sent(promoter.id, invitation.id)

    @pytest.mark.asyncio
    async def test_cancel_records_reason(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)

        cancelled = await InvitationService(db).cancel(promoter.id, invitation.id)

        assert cancelled.status == InvitationStatus.EXPIRED.value
        assert cancelled.expiration_reason == ExpirationReason.EXPIRED_BY_CANCELLATION.value

    @pytest.mark.asyncio
    async def test_cancel_foreign_invitation_is_not_found(self, db, make_promoter, session_factory):
        owner = await make_promoter()
        other = await make_promoter(business_name="Someone Else")
        invitation = await issue(session_factory, owner.id)

        with pytest.raises(NotFoundError):
            await InvitationService(db).cancel(other.id, invitation.id)

    @pytest.mark.asyncio
    async def test_update_message_and_expiry(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        new_expiry = utc_now() + timedelta(days=3)

        updated = await InvitationService(db).update_invitation(
            promoter.id,
            invitation.id,
            InvitationUpdate(personalized_message="Last call", expires_at=new_expiry),
        )

        assert updated.personalized_message == "Last call"
        assert abs(updated.expires_at - new_expiry) < timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_update_rejects_past_expiry(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)

        with pytest.raises(InvalidStateError):
            await InvitationService(db).update_invitation(
                promoter.id,
                invitation.id,
                InvitationUpdate(expires_at=utc_now() - timedelta(hours=1)),
            )

    @pytest.mark.asyncio
    async def test_viewed_invitation_is_not_editable(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        service = InvitationService(db)
        await service.view(invitation.invitation_code)

        with pytest.raises(InvalidStateError):
            await service.update_invitation(
                promoter.id, invitation.id, InvitationUpdate(personalized_message="Hello again")
            )

    @pytest.mark.asyncio
    async def test_cannot_cancel_declined(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        service = InvitationService(db)
        await service.decline(invitation.invitation_code)

        with pytest.raises(InvalidStateError):
            await service.cancel(promoter.id, invitation.id)

        stored = await service.get_by_id(invitation.id, refresh=True)
        assert stored.status == InvitationStatus.DECLINED.value
        assert stored.expiration_reason is None
        assert stored.expired_at is None

    @pytest.mark.asyncio
    async def test_cannot_cancel_accepted(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        async with session_factory() as session:
            await ReferralService(session).accept_invitation(invitation.invitation_code, accept_request())
        service = InvitationService(db)

        with pytest.raises(InvalidStateError):
            await service.cancel(promoter.id, invitation.id)

        stored = await service.get_by_id(invitation.id, refresh=True)
        assert stored.status == InvitationStatus.ACCEPTED.value
        assert stored.expiration_reason is None
        assert stored.accepted_at is not None

    @pytest.mark.asyncio
    async def test_cannot_cancel_twice(self, db, make_promoter, session_factory):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        service = InvitationService(db)
        cancelled = await service.cancel(promoter.id, invitation.id)
        expired_at = cancelled.expired_at

        with pytest.raises(InvalidStateError):
            await service.cancel(promoter.id, invitation.id)

        stored = await service.get_by_id(invitation.id, refresh=True)
        assert stored.status == InvitationStatus.EXPIRED.value
        assert stored.expiration_reason == ExpirationReason.EXPIRED_BY_CANCELLATION.value
        assert stored.expired_at == expired_at

    @pytest.mark.asyncio
    async def test_cannot_cancel_time_expired(self, db, make_promoter, session_factory, force_expired):
        promoter = await make_promoter()
        invitation = await issue(session_factory, promoter.id)
        await force_expired(invitation.id)
        service = InvitationService(db)
        await service.list_invitations(promoter.id)

        with pytest.raises(InvalidStateError):
            await service.cancel(promoter.id, invitation.id)

        stored = await service.get_by_id(invitation.id, refresh=True)
        assert stored.status == InvitationStatus.EXPIRED.value
        assert stored.expiration_reason == ExpirationReason.EXPIRED_BY_TIME.value
