"""
Pytest configuration and shared fixtures.

Every test gets its own file-backed SQLite database so that concurrent
sessions really contend for the same rows.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./promoter_hub_test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("FRONTEND_URL", "https://app.example.com")

import uuid
from decimal import Decimal
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy import update

from promoter_hub.database import build_engine, build_session_factory, init_db
from promoter_hub.models.user import User, UserRoleType
from promoter_hub.models.promoter import Promoter, PartnerInvitation, PromoterTier
from promoter_hub.schemas.invitation import (
    InvitationCreate,
    InvitationAccept,
    AcceptPartnerData,
    AcceptUserData,
    AcceptAddress,
)
from promoter_hub.services import tier_policy


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh schema in a temporary SQLite file"""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'referrals.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(session_factory):
    """Insert a user and return it"""
    async def _make_user(
        role: UserRoleType = UserRoleType.CUSTOMER,
        email: Optional[str] = None,
        name: str = "Test User",
    ) -> User:
        async with session_factory() as session:
            user = User(
                id=uuid.uuid4(),
                email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
                password_hash="not-a-real-hash",
                name=name,
                role=role.value,
                is_active=True,
            )
            session.add(user)
            await session.commit()
            return user

    return _make_user


@pytest.fixture
def make_promoter(session_factory, make_user):
    """Insert an approved promoter (with its user) and return it"""
    async def _make_promoter(
        tier: PromoterTier = PromoterTier.BRONZE,
        invitations_used: int = 0,
        is_active: bool = True,
        successful_invitations: int = 0,
        total_commissions_earned: Decimal = Decimal("0"),
        business_name: str = "Acme Referrals",
    ) -> Promoter:
        user = await make_user(role=UserRoleType.PROMOTER, name="Paula Promoter")
        granted = tier_policy.tier_settings(tier)
        async with session_factory() as session:
            promoter = Promoter(
                id=uuid.uuid4(),
                user_id=user.id,
                business_name=business_name,
                territory="Sao Paulo",
                specialization="Food",
                tier=tier.value,
                commission_rate=granted.commission_rate,
                invitation_quota=granted.invitation_quota,
                invitations_used=invitations_used,
                successful_invitations=successful_invitations,
                total_commissions_earned=total_commissions_earned,
                is_active=is_active,
            )
            session.add(promoter)
            await session.commit()
            return promoter

    return _make_promoter


@pytest.fixture
def force_expired(session_factory):
    """Backdate an invitation's expiry"""
    async def _force_expired(invitation_id: uuid.UUID) -> None:
        from datetime import timedelta
        from promoter_hub.db_types import utc_now

        async with session_factory() as session:
            await session.execute(
                update(PartnerInvitation)
                .where(PartnerInvitation.id == invitation_id)
                .values(expires_at=utc_now() - timedelta(minutes=1))
            )
            await session.commit()

    return _force_expired


def invitation_request(email: str = "store@example.com", **overrides) -> InvitationCreate:
    data = {
        "target_email": email,
        "target_name": "Store Owner",
        "target_business_name": "Corner Store",
        "personalized_message": "Join us!",
    }
    data.update(overrides)
    return InvitationCreate(**data)


def accept_request(
    email: str = "store@example.com",
    document: str = "12345678901",
    user_email: Optional[str] = None,
) -> InvitationAccept:
    return InvitationAccept(
        partner_data=AcceptPartnerData(
            name="Corner Store",
            email=email,
            phone="11999990000",
            document=document,
            document_type="CPF",
        ),
        user_data=AcceptUserData(
            name="Store Owner",
            email=user_email or email,
            password="s3cret-pass",
        ),
        address=AcceptAddress(
            street="Rua das Flores",
            number="100",
            neighborhood="Centro",
            city="Sao Paulo",
            state="SP",
            zip_code="01001-000",
        ),
    )
