"""
Invitation Lifecycle Service

State machine for a single partner invitation:

    PENDING -> SENT -> VIEWED -> ACCEPTED | DECLINED | EXPIRED

Every transition is a conditional UPDATE on the current status; zero rows
affected means another request got there first and the caller re-reads.
Overdue invitations are flipped to EXPIRED lazily whenever they are read.
"""

import uuid
import logging
from datetime import datetime
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession

from promoter_hub.db_types import utc_now
from promoter_hub.models.promoter import (
    Promoter,
    PartnerInvitation,
    InvitationStatus,
    ExpirationReason,
    OPEN_INVITATION_STATUSES,
)
from promoter_hub.schemas.invitation import InvitationUpdate
from promoter_hub.services.exceptions import (
    NotFoundError,
    InvalidStateError,
    ExpiredError,
)

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (
    InvitationStatus.PENDING.value,
    InvitationStatus.SENT.value,
)

SORTABLE_COLUMNS = {
    "created_at": PartnerInvitation.created_at,
    "expires_at": PartnerInvitation.expires_at,
    "target_email": PartnerInvitation.target_email,
}


class InvitationService:
    """Service for invitation state transitions and reads"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Lookups ====================

    async def get_by_code(
        self,
        code: str,
        with_promoter: bool = False,
        refresh: bool = False,
    ) -> PartnerInvitation:
        stmt = select(PartnerInvitation).where(PartnerInvitation.invitation_code == code)
        if with_promoter:
            stmt = stmt.options(
                selectinload(PartnerInvitation.promoter).selectinload(Promoter.user)
            )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise NotFoundError("Invitation not found")
        return invitation

    async def get_by_id(
        self,
        invitation_id: uuid.UUID,
        promoter_id: Optional[uuid.UUID] = None,
        refresh: bool = False,
    ) -> PartnerInvitation:
        """Load an invitation; foreign invitations are reported as missing."""
        stmt = select(PartnerInvitation).where(PartnerInvitation.id == invitation_id)
        if promoter_id is not None:
            stmt = stmt.where(PartnerInvitation.promoter_id == promoter_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        invitation = result.scalar_one_or_none()
        if not invitation:
            raise NotFoundError("Invitation not found")
        return invitation

    async def code_exists(self, code: str) -> bool:
        result = await self.db.execute(
            select(PartnerInvitation.id).where(PartnerInvitation.invitation_code == code)
        )
        return result.scalar_one_or_none() is not None

    async def has_open_invitation(self, target_email: str, now: datetime) -> bool:
        """True if any promoter holds an unexpired open invitation for the email."""
        result = await self.db.execute(
            select(PartnerInvitation.id)
            .where(
                PartnerInvitation.target_email == target_email,
                PartnerInvitation.status.in_(OPEN_INVITATION_STATUSES),
                PartnerInvitation.expires_at > now,
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    # ==================== Expiry ====================

    async def expire_overdue(
        self,
        now: datetime,
        promoter_id: Optional[uuid.UUID] = None,
        target_email: Optional[str] = None,
        invitation_id: Optional[uuid.UUID] = None,
    ) -> int:
        """
        Flip overdue open invitations to EXPIRED. Returns count expired.

        Runs inside the caller's transaction.
        """
        stmt = update(PartnerInvitation).where(
            PartnerInvitation.status.in_(OPEN_INVITATION_STATUSES),
            PartnerInvitation.expires_at <= now,
        )
        if promoter_id is not None:
            stmt = stmt.where(PartnerInvitation.promoter_id == promoter_id)
        if target_email is not None:
            stmt = stmt.where(PartnerInvitation.target_email == target_email)
        if invitation_id is not None:
            stmt = stmt.where(PartnerInvitation.id == invitation_id)

        result = await self.db.execute(
            stmt.values(
                status=InvitationStatus.EXPIRED.value,
                expired_at=now,
                expiration_reason=ExpirationReason.EXPIRED_BY_TIME.value,
            ).execution_options(synchronize_session=False)
        )
        expired_count = result.rowcount
        if expired_count > 0:
            logger.info(f"Expired {expired_count} overdue invitations")
        return expired_count

    async def expire_if_past(self, invitation: PartnerInvitation, now: Optional[datetime] = None) -> bool:
        """
        Persist EXPIRED for an overdue open invitation.

        Commits the flip so it survives the error the caller raises next.
        Returns True if the invitation is (now) expired by time.
        """
        now = now or utc_now()
        if not invitation.is_overdue(now):
            return False

        await self.expire_overdue(now, invitation_id=invitation.id)
        await self.db.commit()
        await self.db.refresh(invitation)
        return True

    async def raise_for_failed_transition(self, invitation_id: uuid.UUID, action: str) -> None:
        """Explain why a conditional transition matched no row."""
        invitation = await self.get_by_id(invitation_id, refresh=True)
        if await self.expire_if_past(invitation):
            raise ExpiredError("Invitation has expired")
        if invitation.status == InvitationStatus.EXPIRED.value:
            raise ExpiredError("Invitation has expired")
        raise InvalidStateError(f"Cannot {action} an invitation that is {invitation.status}")

    # ==================== Transitions ====================

    async def _transition(
        self,
        invitation_id: uuid.UUID,
        allowed_from: Tuple[str, ...],
        values: dict,
        now: datetime,
    ) -> bool:
        stmt = update(PartnerInvitation).where(
            PartnerInvitation.id == invitation_id,
            PartnerInvitation.status.in_(allowed_from),
            PartnerInvitation.expires_at > now,
        )
        result = await self.db.execute(
            stmt.values(**values).execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def claim_for_acceptance(self, invitation_id: uuid.UUID, now: datetime) -> bool:
        """
        Move an open, unexpired invitation to ACCEPTED.

        Runs inside the acceptance unit of work and must be its first write;
        of two concurrent acceptances exactly one sees a matched row.
        """
        return await self._transition(
            invitation_id,
            OPEN_INVITATION_STATUSES,
            {"status": InvitationStatus.ACCEPTED.value, "accepted_at": now},
            now,
        )

    async def set_resulting_partner(self, invitation_id: uuid.UUID, partner_id: uuid.UUID) -> None:
        await self.db.execute(
            update(PartnerInvitation)
            .where(
                PartnerInvitation.id == invitation_id,
                PartnerInvitation.status == InvitationStatus.ACCEPTED.value,
            )
            .values(resulting_partner_id=partner_id)
            .execution_options(synchronize_session=False)
        )

    async def mark_sent(self, promoter_id: uuid.UUID, invitation_id: uuid.UUID) -> PartnerInvitation:
        """PENDING -> SENT once the notification layer has delivered it."""
        invitation = await self.get_by_id(invitation_id, promoter_id=promoter_id, refresh=True)
        now = utc_now()
        if await self.expire_if_past(invitation, now):
            raise ExpiredError("Invitation has expired")

        moved = await self._transition(
            invitation_id,
            (InvitationStatus.PENDING.value,),
            {"status": InvitationStatus.SENT.value, "sent_at": now},
            now,
        )
        if not moved:
            await self.db.rollback()
            await self.raise_for_failed_transition(invitation_id, "send")

        await self.db.commit()
        return await self.get_by_id(invitation_id, refresh=True)

    async def view(self, code: str) -> PartnerInvitation:
        """
        Record that the target opened the invitation.

        PENDING/SENT become VIEWED and VIEWED is left alone. Only a view
        that flips an overdue invitation reports Expired; a stored terminal
        status, EXPIRED included, is rejected as an invalid state.
        """
        invitation = await self.get_by_code(code, with_promoter=True, refresh=True)
        invitation_id = invitation.id
        now = utc_now()
        if await self.expire_if_past(invitation, now):
            raise ExpiredError("Invitation has expired")

        if invitation.status == InvitationStatus.VIEWED.value:
            return await self.get_by_code(code, with_promoter=True, refresh=True)
        if not invitation.is_open:
            raise InvalidStateError(f"Invitation is {invitation.status}")

        moved = await self._transition(
            invitation_id,
            (InvitationStatus.PENDING.value, InvitationStatus.SENT.value),
            {"status": InvitationStatus.VIEWED.value, "viewed_at": now},
            now,
        )
        if moved:
            await self.db.commit()
        else:
            await self.db.rollback()
            current = await self.get_by_id(invitation_id, refresh=True)
            if current.status != InvitationStatus.VIEWED.value:
                await self.raise_for_failed_transition(invitation_id, "view")

        return await self.get_by_code(code, with_promoter=True, refresh=True)

    async def decline(self, code: str) -> PartnerInvitation:
        invitation = await self.get_by_code(code, refresh=True)
        invitation_id = invitation.id
        now = utc_now()
        if await self.expire_if_past(invitation, now):
            raise ExpiredError("Invitation has expired")
        if not invitation.is_open:
            raise InvalidStateError(f"Cannot decline an invitation that is {invitation.status}")

        moved = await self._transition(
            invitation_id,
            OPEN_INVITATION_STATUSES,
            {"status": InvitationStatus.DECLINED.value, "declined_at": now},
            now,
        )
        if not moved:
            await self.db.rollback()
            await self.raise_for_failed_transition(invitation_id, "decline")

        await self.db.commit()
        logger.info(f"Invitation {invitation_id} declined")
        return await self.get_by_id(invitation_id, refresh=True)

    async def cancel(self, promoter_id: uuid.UUID, invitation_id: uuid.UUID) -> PartnerInvitation:
        """Promoter withdraws one of its own open invitations."""
        invitation = await self.get_by_id(invitation_id, promoter_id=promoter_id, refresh=True)
        now = utc_now()
        if await self.expire_if_past(invitation, now):
            raise ExpiredError("Invitation has already expired")
        if not invitation.is_open:
            raise InvalidStateError(f"Cannot cancel an invitation that is {invitation.status}")

        moved = await self._transition(
            invitation_id,
            OPEN_INVITATION_STATUSES,
            {
                "status": InvitationStatus.EXPIRED.value,
                "expired_at": now,
                "expiration_reason": ExpirationReason.EXPIRED_BY_CANCELLATION.value,
            },
            now,
        )
        if not moved:
            await self.db.rollback()
            await self.raise_for_failed_transition(invitation_id, "cancel")

        await self.db.commit()
        logger.info(f"Invitation {invitation_id} cancelled by promoter {promoter_id}")
        return await self.get_by_id(invitation_id, refresh=True)

    async def update_invitation(
        self,
        promoter_id: uuid.UUID,
        invitation_id: uuid.UUID,
        data: InvitationUpdate,
    ) -> PartnerInvitation:
        """Edit message or expiry while the invitation is still PENDING or SENT."""
        invitation = await self.get_by_id(invitation_id, promoter_id=promoter_id, refresh=True)
        now = utc_now()
        if await self.expire_if_past(invitation, now):
            raise ExpiredError("Invitation has expired")

        values = data.model_dump(exclude_unset=True)
        if values.get("expires_at") is not None and values["expires_at"] <= now:
            raise InvalidStateError("New expiry must be in the future")
        if values.get("expires_at", invitation.expires_at) is None:
            values.pop("expires_at")
        if not values:
            return invitation

        moved = await self._transition(invitation_id, EDITABLE_STATUSES, values, now)
        if not moved:
            await self.db.rollback()
            await self.raise_for_failed_transition(invitation_id, "edit")

        await self.db.commit()
        return await self.get_by_id(invitation_id, refresh=True)

    # ==================== Listing ====================

    async def list_invitations(
        self,
        promoter_id: uuid.UUID,
        status: Optional[str] = None,
        invitation_type: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[PartnerInvitation], int]:
        """List a promoter's invitations; overdue ones are expired first."""
        await self.expire_overdue(utc_now(), promoter_id=promoter_id)
        await self.db.commit()

        filters = [PartnerInvitation.promoter_id == promoter_id]
        if status:
            filters.append(PartnerInvitation.status == status)
        if invitation_type:
            filters.append(PartnerInvitation.invitation_type == invitation_type)

        count_result = await self.db.execute(
            select(func.count(PartnerInvitation.id)).where(*filters)
        )
        total = count_result.scalar() or 0

        column = SORTABLE_COLUMNS.get(sort_by, PartnerInvitation.created_at)
        order = column.asc() if sort_order == "asc" else column.desc()

        result = await self.db.execute(
            select(PartnerInvitation)
            .where(*filters)
            .order_by(order, PartnerInvitation.id)
            .offset((page - 1) * limit)
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all()), total
