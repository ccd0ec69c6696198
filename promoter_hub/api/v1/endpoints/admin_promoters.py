"""
Admin Promoter Endpoints

Application review, tier overrides and commission status changes.
"""

from uuid import UUID

from fastapi import APIRouter

from promoter_hub.api.deps import DB, Admin
from promoter_hub.schemas.promoter import (
    PromoterApproval,
    PromoterTierUpdate,
    PromoterResponse,
    PendingApplicationList,
)
from promoter_hub.schemas.commission import CommissionResponse, CommissionPayment, CommissionDispute
from promoter_hub.services.promoter_service import PromoterService
from promoter_hub.services.commission_service import CommissionService


router = APIRouter(prefix="/admin", tags=["Admin Promoters"])


# ============================================================================
# Promoter applications
# ============================================================================

@router.get("/promoters/pending", response_model=PendingApplicationList)
async def list_pending_applications(admin: Admin, db: DB):
    service = PromoterService(db)
    items = await service.list_pending_applications()
    return {"items": items, "total": len(items)}


@router.post("/promoters/approve", response_model=PromoterResponse)
async def approve_application(data: PromoterApproval, admin: Admin, db: DB):
    """
    Approve or reject a pending application.

    Approval activates the profile and upgrades the user's role.
    """
    service = PromoterService(db)
    return await service.approve_application(data.promoter_id, data.approved, data.notes)


@router.put("/promoters/tier", response_model=PromoterResponse)
async def update_promoter_tier(data: PromoterTierUpdate, admin: Admin, db: DB):
    service = PromoterService(db)
    return await service.set_tier(data.promoter_id, data.tier)


# ============================================================================
# Commission ledger
# ============================================================================

@router.post("/commissions/{commission_id}/approve", response_model=CommissionResponse)
async def approve_commission(commission_id: UUID, admin: Admin, db: DB):
    service = CommissionService(db)
    return await service.approve_commission(commission_id)


@router.post("/commissions/{commission_id}/pay", response_model=CommissionResponse)
async def pay_commission(commission_id: UUID, data: CommissionPayment, admin: Admin, db: DB):
    service = CommissionService(db)
    return await service.mark_commission_paid(commission_id, data.payment_reference)


@router.post("/commissions/{commission_id}/dispute", response_model=CommissionResponse)
async def dispute_commission(commission_id: UUID, data: CommissionDispute, admin: Admin, db: DB):
    service = CommissionService(db)
    return await service.dispute_commission(commission_id, data.reason)
