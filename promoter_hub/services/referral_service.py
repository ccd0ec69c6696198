"""
Referral Orchestrator

Composes the promoter account, invitation lifecycle and commission ledger
into the two externally visible workflows. Each runs as one unit of work:

- create_invitation: reserve quota -> check target -> allocate code -> insert
- accept_invitation: claim invitation -> create partner/address/user ->
  count the conversion -> append bonus -> evaluate tier promotion

Any failure rolls the whole unit back, including the quota reservation.
"""

import uuid
import logging
from datetime import timedelta
from typing import Tuple

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from promoter_hub.config import settings
from promoter_hub.core.security import get_password_hash
from promoter_hub.db_types import utc_now
from promoter_hub.models.user import User, UserRoleType
from promoter_hub.models.partner import Partner, Address
from promoter_hub.models.promoter import (
    PartnerInvitation,
    InvitationStatus,
)
from promoter_hub.schemas.invitation import InvitationCreate, InvitationAccept
from promoter_hub.services.commission_service import CommissionService
from promoter_hub.services.invitation_code import generate_unique_invitation_code
from promoter_hub.services.invitation_service import InvitationService
from promoter_hub.services.promoter_service import PromoterService
from promoter_hub.services.exceptions import (
    ReferralError,
    InvalidStateError,
    ExpiredError,
    DuplicateTargetError,
    AlreadyRegisteredError,
    EmailMismatchError,
    TransientConflictError,
)

logger = logging.getLogger(__name__)


def build_invitation_url(code: str) -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}/cadastro/parceiro?convite={code}"


class ReferralService:
    """Service for the create and accept invitation workflows"""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.promoters = PromoterService(db)
        self.invitations = InvitationService(db)
        self.commissions = CommissionService(db)

    # ========================================================================
    # Create
    # ========================================================================

    async def _is_registered_partner(self, email: str) -> bool:
        result = await self.db.execute(select(Partner.id).where(Partner.email == email))
        return result.scalar_one_or_none() is not None

    async def create_invitation(
        self,
        promoter_id: uuid.UUID,
        data: InvitationCreate,
    ) -> Tuple[PartnerInvitation, str]:
        """
        Issue a new invitation and return it with its shareable URL.

        Flow:
        1. Reserve a quota slot (first write, serializes concurrent creates)
        2. Expire stale invitations for the target, then reject duplicates
        3. Allocate a unique code and snapshot the promoter's current rate
        """
        promoter = await self.promoters.get_promoter(promoter_id)
        if not promoter.is_active:
            raise InvalidStateError("Promoter is not active")

        target_email = str(data.target_email)
        now = utc_now()
        expires_at = data.expires_at or now + timedelta(days=settings.INVITATION_TTL_DAYS)
        if expires_at <= now:
            raise InvalidStateError("Expiry must be in the future")

        try:
            await self.promoters.reserve_invitation_slot(promoter_id)

            await self.invitations.expire_overdue(now, target_email=target_email)
            if await self.invitations.has_open_invitation(target_email, now):
                raise DuplicateTargetError(f"{target_email} already has an open invitation")
            if await self._is_registered_partner(target_email):
                raise DuplicateTargetError(f"{target_email} is already a registered partner")

            code = await generate_unique_invitation_code(
                self.invitations.code_exists,
                max_attempts=settings.INVITATION_CODE_MAX_ATTEMPTS,
            )

            # Rate read under the reservation so a concurrent tier change can't interleave
            promoter = await self.promoters.get_promoter(promoter_id, refresh=True)

            invitation = PartnerInvitation(
                id=uuid.uuid4(),
                invitation_code=code,
                promoter_id=promoter_id,
                target_email=target_email,
                target_phone=data.target_phone,
                target_name=data.target_name,
                target_business_name=data.target_business_name,
                personalized_message=data.personalized_message,
                invitation_type=data.invitation_type.value,
                status=InvitationStatus.PENDING.value,
                commission_percentage=promoter.commission_rate,
                expires_at=expires_at,
            )
            self.db.add(invitation)
            await self.db.commit()

        except ReferralError:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            if "invitation_code" in str(e.orig):
                logger.warning(f"Invitation code collision for promoter {promoter_id}")
                raise TransientConflictError("Invitation code collision, please retry")
            logger.warning(f"Concurrent invitation for {target_email} rejected: {e.orig}")
            raise DuplicateTargetError(f"{target_email} already has an open invitation")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error creating invitation for promoter {promoter_id}: {e}")
            raise

        await self.db.refresh(invitation)
        logger.info(f"Invitation {invitation.invitation_code} created by promoter {promoter_id}")
        return invitation, build_invitation_url(invitation.invitation_code)

    # ========================================================================
    # Read / decline / cancel
    # ========================================================================

    async def get_invitation_by_code(self, code: str) -> dict:
        """Public view of an invitation; opening it marks it VIEWED."""
        invitation = await self.invitations.view(code)
        promoter = invitation.promoter
        return {
            "id": invitation.id,
            "target_email": invitation.target_email,
            "target_name": invitation.target_name,
            "target_business_name": invitation.target_business_name,
            "personalized_message": invitation.personalized_message,
            "expires_at": invitation.expires_at,
            "commission_percentage": invitation.commission_percentage,
            "promoter": {
                "business_name": promoter.business_name,
                "territory": promoter.territory,
                "specialization": promoter.specialization,
                "user": {
                    "id": promoter.user.id,
                    "name": promoter.user.name,
                    "email": promoter.user.email,
                },
            },
        }

    async def decline_invitation(self, code: str) -> PartnerInvitation:
        return await self.invitations.decline(code)

    async def cancel_invitation(self, promoter_id: uuid.UUID, invitation_id: uuid.UUID) -> PartnerInvitation:
        return await self.invitations.cancel(promoter_id, invitation_id)

    # ========================================================================
    # Accept
    # ========================================================================

    async def _ensure_not_registered(self, data: InvitationAccept) -> None:
        partner_data = data.partner_data
        result = await self.db.execute(
            select(Partner.id).where(
                or_(
                    Partner.email == str(partner_data.email),
                    Partner.document == partner_data.document,
                )
            ).limit(1)
        )
        if result.scalar_one_or_none():
            raise AlreadyRegisteredError("A partner with this email or document already exists")

        result = await self.db.execute(
            select(User.id).where(User.email == str(data.user_data.email))
        )
        if result.scalar_one_or_none():
            raise AlreadyRegisteredError("A user with this email already exists")

    async def accept_invitation(self, code: str, data: InvitationAccept) -> dict:
        """
        Convert an invitation into an active partner.

        Validation order: expiry, email match, existing registration. The
        claim on the invitation is the first write of the unit and the
        registration check runs after it, so of two concurrent acceptances
        only one proceeds and the other observes the claimed status.
        """
        invitation = await self.invitations.get_by_code(code, refresh=True)
        invitation_id = invitation.id
        promoter_id = invitation.promoter_id
        now = utc_now()

        if await self.invitations.expire_if_past(invitation, now):
            raise ExpiredError("Invitation has expired")
        if invitation.status == InvitationStatus.EXPIRED.value:
            raise ExpiredError("Invitation has expired")
        if not invitation.is_open:
            raise InvalidStateError(f"Cannot accept an invitation that is {invitation.status}")

        if str(data.partner_data.email) != invitation.target_email:
            raise EmailMismatchError("Email does not match the invitation")

        # Hash before the claim to keep the write lock short
        password_hash = get_password_hash(data.user_data.password)

        try:
            claimed = await self.invitations.claim_for_acceptance(invitation_id, now)
            if not claimed:
                await self.db.rollback()
                logger.warning(f"Lost acceptance race for invitation {invitation_id}")
                await self.invitations.raise_for_failed_transition(invitation_id, "accept")

            await self._ensure_not_registered(data)

            partner = Partner(
                id=uuid.uuid4(),
                name=data.partner_data.name,
                email=str(data.partner_data.email),
                phone=data.partner_data.phone,
                document=data.partner_data.document,
                document_type=data.partner_data.document_type.value,
                description=data.partner_data.description,
                is_active=True,
            )
            self.db.add(partner)
            await self.db.flush()

            address = Address(
                id=uuid.uuid4(),
                partner_id=partner.id,
                street=data.address.street,
                number=data.address.number,
                complement=data.address.complement,
                neighborhood=data.address.neighborhood,
                city=data.address.city,
                state=data.address.state.upper(),
                zip_code=data.address.zip_code,
            )
            user = User(
                id=uuid.uuid4(),
                email=str(data.user_data.email),
                password_hash=password_hash,
                name=data.user_data.name,
                role=UserRoleType.PARTNER_ADMIN.value,
                partner_id=partner.id,
                is_active=True,
                email_verified=True,
            )
            self.db.add_all([address, user])
            await self.db.flush()

            await self.invitations.set_resulting_partner(invitation_id, partner.id)
            await self.promoters.record_successful_invitation(promoter_id)

            commission = await self.commissions.append_invitation_bonus(
                promoter_id=promoter_id,
                invitation_id=invitation_id,
                partner_id=partner.id,
                partner_name=partner.name,
                amount=settings.INVITATION_BONUS_AMOUNT,
            )
            await self.promoters.add_commission_earnings(promoter_id, commission.amount)
            await self.promoters.evaluate_tier_promotion(promoter_id)

            await self.db.commit()

        except ReferralError:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Acceptance of invitation {invitation_id} hit a uniqueness conflict: {e.orig}")
            raise AlreadyRegisteredError("A partner or user with these details already exists")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error accepting invitation {invitation_id}: {e}")
            raise

        logger.info(f"Invitation {invitation_id} accepted; partner {partner.id} created")
        return {
            "invitation_id": invitation_id,
            "partner_id": partner.id,
            "user_id": user.id,
            "commission_id": commission.id,
        }
