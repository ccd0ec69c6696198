"""
Commission Ledger Service

Append-only record of what promoters earned. Entries only ever move
PENDING -> APPROVED -> PAID, or to DISPUTED from any state but PAID.
"""

import uuid
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from promoter_hub.db_types import utc_now
from promoter_hub.models.promoter import (
    PromoterCommission,
    CommissionType,
    CommissionStatus,
)
from promoter_hub.services.exceptions import NotFoundError, InvalidStateError

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    "created_at": PromoterCommission.created_at,
    "amount": PromoterCommission.amount,
    "paid_at": PromoterCommission.paid_at,
}


class CommissionService:
    """Service for the promoter commission ledger"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== Appending ====================

    async def append_invitation_bonus(
        self,
        promoter_id: uuid.UUID,
        invitation_id: uuid.UUID,
        partner_id: uuid.UUID,
        partner_name: str,
        amount: Decimal,
    ) -> PromoterCommission:
        """
        Record the fixed bonus for a converted invitation.

        Runs inside the caller's unit of work; the unique (type, reference)
        constraint rejects a second bonus for the same invitation.
        """
        commission = PromoterCommission(
            id=uuid.uuid4(),
            promoter_id=promoter_id,
            partner_id=partner_id,
            commission_type=CommissionType.INVITATION_BONUS.value,
            reference_id=invitation_id,
            amount=amount,
            percentage=Decimal("0"),
            base_amount=Decimal("0"),
            status=CommissionStatus.PENDING.value,
            description=f"Invitation bonus for partner {partner_name}",
            extra_data={"invitation_id": str(invitation_id)},
        )
        self.db.add(commission)
        await self.db.flush()

        logger.info(
            f"Appended {CommissionType.INVITATION_BONUS.value} of {amount} "
            f"for promoter {promoter_id}"
        )
        return commission

    # ==================== Status transitions ====================

    async def get_commission(
        self,
        commission_id: uuid.UUID,
        refresh: bool = False,
    ) -> PromoterCommission:
        stmt = select(PromoterCommission).where(PromoterCommission.id == commission_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        commission = result.scalar_one_or_none()
        if not commission:
            raise NotFoundError(f"Commission {commission_id} not found")
        return commission

    async def _transition(
        self,
        commission_id: uuid.UUID,
        allowed_from: Tuple[str, ...],
        values: dict,
    ) -> PromoterCommission:
        commission = await self.get_commission(commission_id, refresh=True)
        current_status = commission.status

        result = await self.db.execute(
            update(PromoterCommission)
            .where(
                PromoterCommission.id == commission_id,
                PromoterCommission.status.in_(allowed_from),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            commission = await self.get_commission(commission_id, refresh=True)
            raise InvalidStateError(
                f"Commission is {commission.status}; cannot move to {values['status']}"
            )

        await self.db.commit()
        logger.info(f"Commission {commission_id} moved from {current_status} to {values['status']}")
        return await self.get_commission(commission_id, refresh=True)

    async def approve_commission(self, commission_id: uuid.UUID) -> PromoterCommission:
        return await self._transition(
            commission_id,
            (CommissionStatus.PENDING.value,),
            {"status": CommissionStatus.APPROVED.value, "approved_at": utc_now()},
        )

    async def mark_commission_paid(
        self,
        commission_id: uuid.UUID,
        payment_reference: Optional[str] = None,
    ) -> PromoterCommission:
        return await self._transition(
            commission_id,
            (CommissionStatus.APPROVED.value,),
            {
                "status": CommissionStatus.PAID.value,
                "paid_at": utc_now(),
                "payment_reference": payment_reference,
            },
        )

    async def dispute_commission(
        self,
        commission_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> PromoterCommission:
        return await self._transition(
            commission_id,
            (CommissionStatus.PENDING.value, CommissionStatus.APPROVED.value),
            {
                "status": CommissionStatus.DISPUTED.value,
                "disputed_at": utc_now(),
                "dispute_reason": reason,
            },
        )

    # ==================== Queries ====================

    async def list_commissions(
        self,
        promoter_id: uuid.UUID,
        commission_type: Optional[str] = None,
        status: Optional[str] = None,
        partner_id: Optional[uuid.UUID] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Tuple[List[PromoterCommission], int]:
        """List a promoter's commissions with filters and pagination"""
        filters = [PromoterCommission.promoter_id == promoter_id]
        if commission_type:
            filters.append(PromoterCommission.commission_type == commission_type)
        if status:
            filters.append(PromoterCommission.status == status)
        if partner_id:
            filters.append(PromoterCommission.partner_id == partner_id)
        if start_date:
            filters.append(PromoterCommission.created_at >= start_date)
        if end_date:
            filters.append(PromoterCommission.created_at <= end_date)

        count_result = await self.db.execute(
            select(func.count(PromoterCommission.id)).where(*filters)
        )
        total = count_result.scalar() or 0

        column = SORTABLE_COLUMNS.get(sort_by, PromoterCommission.created_at)
        order = column.asc() if sort_order == "asc" else column.desc()

        result = await self.db.execute(
            select(PromoterCommission)
            .where(*filters)
            .order_by(order, PromoterCommission.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    async def count(self, promoter_id: uuid.UUID) -> int:
        result = await self.db.execute(
            select(func.count(PromoterCommission.id)).where(
                PromoterCommission.promoter_id == promoter_id
            )
        )
        return result.scalar() or 0

    async def get_total(
        self,
        promoter_id: uuid.UUID,
        since: Optional[datetime] = None,
    ) -> Decimal:
        """Sum of all commission amounts, optionally from `since` onwards."""
        stmt = select(func.coalesce(func.sum(PromoterCommission.amount), 0)).where(
            PromoterCommission.promoter_id == promoter_id
        )
        if since:
            stmt = stmt.where(PromoterCommission.created_at >= since)
        result = await self.db.execute(stmt)
        return Decimal(str(result.scalar() or 0))

    async def get_totals_by_type(self, promoter_id: uuid.UUID) -> dict:
        result = await self.db.execute(
            select(
                PromoterCommission.commission_type,
                func.coalesce(func.sum(PromoterCommission.amount), 0),
                func.count(PromoterCommission.id),
            )
            .where(PromoterCommission.promoter_id == promoter_id)
            .group_by(PromoterCommission.commission_type)
        )
        return {
            commission_type: {"amount": Decimal(str(amount)), "count": count}
            for commission_type, amount, count in result.all()
        }
