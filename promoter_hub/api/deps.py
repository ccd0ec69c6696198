from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from promoter_hub.database import get_db
from promoter_hub.core.security import verify_access_token
from promoter_hub.core.permissions import PermissionChecker, Capability
from promoter_hub.models.user import User
from promoter_hub.models.promoter import Promoter


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """
    Dependency to get the current authenticated user.
    Validates the JWT token and returns the user object.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    user_id = verify_access_token(credentials.credentials)
    if user_id is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_uuid = uuid.UUID(user_id)
    except ValueError:
        logger.warning(f"Invalid user_id in token: {user_id}")
        raise credentials_exception

    user = await db.get(User, user_uuid)
    if user is None:
        logger.warning(f"User {user_id} not found")
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    return user


async def get_permission_checker(
    user: Annotated[User, Depends(get_current_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PermissionChecker:
    """Build the capability checker from the user and their promoter profile."""
    result = await db.execute(select(Promoter).where(Promoter.user_id == user.id))
    return PermissionChecker(user, result.scalar_one_or_none())


def require_capability(capability: Capability):
    """
    Dependency factory to require a capability.

    Usage:
        @router.get("/", dependencies=[Depends(require_capability(Capability.ADMINISTER))])
        async def list_pending():
            ...
    """
    async def capability_dependency(
        checker: Annotated[PermissionChecker, Depends(get_permission_checker)]
    ) -> PermissionChecker:
        if not checker.can(capability):
            logger.warning(f"User {checker.user.id} denied {capability.value}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=checker.denial_reason(capability)
            )
        return checker

    return capability_dependency


async def get_current_promoter(
    checker: Annotated[PermissionChecker, Depends(require_capability(Capability.MANAGE_INVITATIONS))],
) -> Promoter:
    return checker.promoter


# Type aliases for cleaner dependency injection
DB = Annotated[AsyncSession, Depends(get_db)]
CurrentUser = Annotated[User, Depends(get_current_user)]
Checker = Annotated[PermissionChecker, Depends(get_permission_checker)]
CurrentPromoter = Annotated[Promoter, Depends(get_current_promoter)]
CommissionViewer = Annotated[PermissionChecker, Depends(require_capability(Capability.VIEW_COMMISSIONS))]
Admin = Annotated[PermissionChecker, Depends(require_capability(Capability.ADMINISTER))]
