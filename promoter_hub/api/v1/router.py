from fastapi import APIRouter

from promoter_hub.api.v1.endpoints import (
    # Promoter self-service
    promoters,
    # Invitation landing page (no auth)
    public_invitations,
    # Administration
    admin_promoters,
)


api_router = APIRouter(prefix="/api/v1")

api_router.include_router(promoters.router)
api_router.include_router(public_invitations.router)
api_router.include_router(admin_promoters.router)
