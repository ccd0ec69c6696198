"""
Promoter API Endpoints

Endpoints for promoters running the referral program:
- Application and profile
- Invitation management
- Commission ledger
- Analytics
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Query, status

from promoter_hub.api.deps import DB, Checker, CurrentUser, CurrentPromoter, CommissionViewer
from promoter_hub.core.permissions import Capability
from promoter_hub.models.promoter import InvitationStatus, InvitationType, CommissionType, CommissionStatus
from promoter_hub.schemas.base import PaginationMeta, SortOrder
from promoter_hub.schemas.promoter import (
    PromoterApply,
    PromoterUpdate,
    PromoterResponse,
    PromoterProfileResponse,
    PromoterAnalytics,
)
from promoter_hub.schemas.invitation import (
    InvitationCreate,
    InvitationUpdate,
    InvitationResponse,
    InvitationCreated,
    InvitationList,
    InvitationSortField,
)
from promoter_hub.schemas.commission import CommissionList, CommissionSortField
from promoter_hub.services.exceptions import AlreadyExistsError, IneligibleError
from promoter_hub.services.promoter_service import PromoterService
from promoter_hub.services.invitation_service import InvitationService
from promoter_hub.services.commission_service import CommissionService
from promoter_hub.services.referral_service import ReferralService


router = APIRouter(prefix="/promoters", tags=["Promoters"])


# ============================================================================
# Application & Profile
# ============================================================================

@router.post("/apply", response_model=PromoterResponse, status_code=status.HTTP_201_CREATED)
async def apply_for_promotion(data: PromoterApply, checker: Checker, db: DB):
    """
    Apply to become a promoter.

    The profile starts inactive at BRONZE until an administrator approves it.
    """
    if not checker.can(Capability.APPLY):
        if checker.owns_promoter_profile:
            raise AlreadyExistsError(checker.denial_reason(Capability.APPLY))
        raise IneligibleError(checker.denial_reason(Capability.APPLY))

    service = PromoterService(db)
    return await service.apply_for_promotion(checker.user.id, data)


@router.get("/profile", response_model=PromoterProfileResponse)
async def get_profile(user: CurrentUser, db: DB):
    """Current user's promoter profile with this month's commissions."""
    service = PromoterService(db)
    return await service.get_profile(user.id)


@router.put("/profile", response_model=PromoterResponse)
async def update_profile(data: PromoterUpdate, user: CurrentUser, db: DB):
    service = PromoterService(db)
    return await service.update_profile(user.id, data)


# ============================================================================
# Invitations
# ============================================================================

@router.post("/invitations", response_model=InvitationCreated, status_code=status.HTTP_201_CREATED)
async def create_invitation(data: InvitationCreate, promoter: CurrentPromoter, db: DB):
    """
    Issue an invitation code to a prospective partner.

    Consumes one slot of the promoter's tier quota.
    """
    service = ReferralService(db)
    invitation, invitation_url = await service.create_invitation(promoter.id, data)
    return {"invitation": invitation, "invitation_url": invitation_url}


@router.get("/invitations", response_model=InvitationList)
async def list_invitations(
    promoter: CurrentPromoter,
    db: DB,
    status_filter: Optional[InvitationStatus] = Query(None, alias="status"),
    invitation_type: Optional[InvitationType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: InvitationSortField = "created_at",
    sort_order: SortOrder = "desc",
):
    service = InvitationService(db)
    items, total = await service.list_invitations(
        promoter.id,
        status=status_filter.value if status_filter else None,
        invitation_type=invitation_type.value if invitation_type else None,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {"items": items, "pagination": PaginationMeta.build(page, limit, total)}


@router.put("/invitations/{invitation_id}", response_model=InvitationResponse)
async def update_invitation(
    invitation_id: UUID,
    data: InvitationUpdate,
    promoter: CurrentPromoter,
    db: DB,
):
    """Edit the message or expiry while the invitation is PENDING or SENT."""
    service = InvitationService(db)
    return await service.update_invitation(promoter.id, invitation_id, data)


@router.post("/invitations/{invitation_id}/sent", response_model=InvitationResponse)
async def mark_invitation_sent(invitation_id: UUID, promoter: CurrentPromoter, db: DB):
    service = InvitationService(db)
    return await service.mark_sent(promoter.id, invitation_id)


@router.delete("/invitations/{invitation_id}", response_model=InvitationResponse)
async def cancel_invitation(invitation_id: UUID, promoter: CurrentPromoter, db: DB):
    """Withdraw an open invitation. It is recorded as expired by cancellation."""
    service = ReferralService(db)
    return await service.cancel_invitation(promoter.id, invitation_id)


# ============================================================================
# Commissions & Analytics
# ============================================================================

@router.get("/commissions", response_model=CommissionList)
async def list_commissions(
    checker: CommissionViewer,
    db: DB,
    commission_type: Optional[CommissionType] = None,
    status_filter: Optional[CommissionStatus] = Query(None, alias="status"),
    partner_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: CommissionSortField = "created_at",
    sort_order: SortOrder = "desc",
):
    service = CommissionService(db)
    items, total = await service.list_commissions(
        checker.promoter.id,
        commission_type=commission_type.value if commission_type else None,
        status=status_filter.value if status_filter else None,
        partner_id=partner_id,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {"items": items, "pagination": PaginationMeta.build(page, limit, total)}


@router.get("/analytics", response_model=PromoterAnalytics)
async def get_analytics(checker: CommissionViewer, db: DB):
    """Invitation and commission overview plus tier progress."""
    service = PromoterService(db)
    return await service.get_analytics(checker.promoter.id)
