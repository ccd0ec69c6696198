"""
Public Invitation Endpoints

No authentication: the invitation code in the URL is the credential.
"""

from fastapi import APIRouter, status

from promoter_hub.api.deps import DB
from promoter_hub.schemas.invitation import (
    InvitationAccept,
    InvitationResponse,
    PublicInvitationResponse,
    AcceptedInvitationResponse,
)
from promoter_hub.services.referral_service import ReferralService


router = APIRouter(prefix="/public/invitations", tags=["Public Invitations"])


@router.get("/{code}", response_model=PublicInvitationResponse)
async def get_invitation(code: str, db: DB):
    """
    Invitation details for the landing page.

    Opening a PENDING or SENT invitation marks it VIEWED.
    """
    service = ReferralService(db)
    return await service.get_invitation_by_code(code)


@router.post("/{code}/accept", response_model=AcceptedInvitationResponse, status_code=status.HTTP_201_CREATED)
async def accept_invitation(code: str, data: InvitationAccept, db: DB):
    """
    Register as a partner through an invitation.

    Creates the partner, its address and an administrator account, and
    credits the inviting promoter.
    """
    service = ReferralService(db)
    return await service.accept_invitation(code, data)


@router.post("/{code}/decline", response_model=InvitationResponse)
async def decline_invitation(code: str, db: DB):
    service = ReferralService(db)
    return await service.decline_invitation(code)
