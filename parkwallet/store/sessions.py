"""Parking session records."""

import logging
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import Select, and_, exists, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parkwallet.db.models import ParkingSession, WalletTransaction
from parkwallet.db.models.parking_session import (
    PAYMENT_CANCELLED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
)
from parkwallet.db.models.wallet_transaction import KIND_DEDUCTION
from parkwallet.db.types import utcnow
from parkwallet.errors import Conflict

logger = logging.getLogger(__name__)

SORTABLE_COLUMNS = {
    "entered_at": ParkingSession.entered_at,
    "exited_at": ParkingSession.exited_at,
    "amount_due": ParkingSession.amount_due,
    "duration_minutes": ParkingSession.duration_minutes,
}


def new_session_id(now: Optional[datetime] = None) -> str:
    """Time-ordered id with a random suffix so same-millisecond check-ins never collide."""
    now = now or utcnow()
    return f"PARK_{int(now.timestamp() * 1000)}_{uuid4().hex[:6]}"


class SessionStore:
    """CRUD over ``parking_sessions``.

    Every write commits on its own. Writes that guard an invariant are
    conditional updates and report through their return value whether they
    matched, so callers can tell a lost race from a success.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, session_id: str) -> Optional[ParkingSession]:
        """Fresh read of one session, bypassing the identity map."""
        result = await self.db.execute(
            select(ParkingSession)
            .where(ParkingSession.session_id == session_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        subject_id: str,
        vehicle_tag: str,
        entered_at: datetime,
        amount_due: int,
    ) -> ParkingSession:
        parking = ParkingSession(
            session_id=new_session_id(entered_at),
            subject_id=subject_id,
            vehicle_tag=vehicle_tag,
            entered_at=entered_at,
            exited_at=None,
            amount_due=amount_due,
            duration_minutes=None,
            payment_state=PAYMENT_PENDING,
        )
        self.db.add(parking)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            # Partial unique index on open sessions per plate
            logger.warning(f"Concurrent check-in rejected for vehicle {vehicle_tag}: {e.orig}")
            raise Conflict("This vehicle is already checked in") from e
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        await self.db.refresh(parking)
        logger.info(f"Created parking session {parking.session_id} for vehicle {vehicle_tag}")
        return parking

    async def get_active_by_vehicle(self, vehicle_tag: str) -> Optional[ParkingSession]:
        result = await self.db.execute(
            select(ParkingSession)
            .where(
                ParkingSession.vehicle_tag == vehicle_tag,
                ParkingSession.exited_at.is_(None),
            )
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_unpaid_closed_by_vehicle(self, vehicle_tag: str) -> Optional[ParkingSession]:
        """Most recent checked-out session for the plate that is still waiting for payment."""
        result = await self.db.execute(
            select(ParkingSession)
            .where(
                ParkingSession.vehicle_tag == vehicle_tag,
                ParkingSession.exited_at.is_not(None),
                ParkingSession.payment_state == PAYMENT_PENDING,
            )
            .order_by(ParkingSession.exited_at.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_active_by_subject(self, subject_id: str) -> Optional[ParkingSession]:
        result = await self.db.execute(
            select(ParkingSession)
            .where(
                ParkingSession.subject_id == subject_id,
                ParkingSession.exited_at.is_(None),
            )
            .order_by(ParkingSession.entered_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_by_subject(self, subject_id: str) -> List[ParkingSession]:
        result = await self.db.execute(
            select(ParkingSession)
            .where(ParkingSession.subject_id == subject_id)
            .order_by(ParkingSession.entered_at.desc())
        )
        return list(result.scalars().all())

    async def list_active(self) -> List[ParkingSession]:
        result = await self.db.execute(
            select(ParkingSession)
            .where(ParkingSession.exited_at.is_(None))
            .order_by(ParkingSession.entered_at.desc())
        )
        return list(result.scalars().all())

    async def query(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        payment_states: Optional[Sequence[str]] = None,
        sort_by: str = "entered_at",
        descending: bool = True,
        offset: int = 0,
        limit: int = 100,
    ) -> Tuple[List[ParkingSession], int]:
        """Filtered page of sessions plus the total number of matches."""
        query: Select = select(ParkingSession)

        if start_date:
            query = query.where(ParkingSession.entered_at >= start_date)
        if end_date:
            query = query.where(ParkingSession.entered_at <= end_date)
        if payment_states:
            query = query.where(ParkingSession.payment_state.in_(payment_states))

        total = await self.db.scalar(select(func.count()).select_from(query.subquery()))

        column = SORTABLE_COLUMNS[sort_by]
        order = column.desc() if descending else column.asc()
        # Tie-break on the id so pages are stable
        query = query.order_by(order, ParkingSession.session_id).offset(offset).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all()), total or 0

    async def close(
        self,
        session_id: str,
        exited_at: datetime,
        duration_minutes: int,
        amount_due: int,
    ) -> bool:
        """Record the checkout. Only matches a session that is still open."""
        try:
            result = await self.db.execute(
                update(ParkingSession)
                .where(
                    ParkingSession.session_id == session_id,
                    ParkingSession.exited_at.is_(None),
                )
                .values(
                    exited_at=exited_at,
                    duration_minutes=duration_minutes,
                    amount_due=amount_due,
                )
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return result.rowcount == 1

    async def set_payment_state(
        self,
        session_id: str,
        new_state: str,
        at: Optional[datetime] = None,
    ) -> bool:
        """Move a pending, already closed session to a terminal state."""
        values = {"payment_state": new_state}
        if new_state == PAYMENT_PAID:
            values["paid_at"] = at or utcnow()

        try:
            result = await self.db.execute(
                update(ParkingSession)
                .where(
                    ParkingSession.session_id == session_id,
                    ParkingSession.exited_at.is_not(None),
                    ParkingSession.payment_state == PAYMENT_PENDING,
                )
                .values(**values)
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        return result.rowcount == 1

    async def mark_paid(self, session_id: str, at: Optional[datetime] = None) -> bool:
        return await self.set_payment_state(session_id, PAYMENT_PAID, at)

    async def mark_cancelled(self, session_id: str) -> bool:
        return await self.set_payment_state(session_id, PAYMENT_CANCELLED)

    async def list_debited_but_pending(self, limit: int = 500) -> List[ParkingSession]:
        """Closed, still pending sessions that already have a wallet deduction."""
        debited = exists().where(
            and_(
                WalletTransaction.reference == ParkingSession.session_id,
                WalletTransaction.kind == KIND_DEDUCTION,
            )
        )
        result = await self.db.execute(
            select(ParkingSession)
            .where(
                ParkingSession.exited_at.is_not(None),
                ParkingSession.payment_state == PAYMENT_PENDING,
                debited,
            )
            .order_by(ParkingSession.exited_at.asc())
            .limit(limit)
        )
        return list(result.scalars().all())
