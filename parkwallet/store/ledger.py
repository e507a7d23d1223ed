"""Wallet balances and their adjustments."""

import logging
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from parkwallet.config import settings
from parkwallet.db.models import Wallet, WalletTransaction
from parkwallet.db.models.wallet_transaction import KIND_DEDUCTION, KIND_TOP_UP
from parkwallet.db.types import utcnow
from parkwallet.errors import Conflict, InsufficientFunds, InvalidArgument, NotFound

logger = logging.getLogger(__name__)


def new_wallet_id(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"WALLET_{int(now.timestamp() * 1000)}_{uuid4().hex[:6]}"


class Ledger:
    """Balance reads and adjustments over ``wallets``.

    The store offers no row locks here, so :meth:`adjust` is an optimistic
    read-then-write: the balance is written with a compare-and-set on
    ``version`` and the audit row goes into the same commit. A lost race is
    retried from a fresh read a bounded number of times.
    """

    def __init__(self, db: AsyncSession, max_retries: Optional[int] = None):
        self.db = db
        if max_retries is None:
            max_retries = settings.LEDGER_MAX_RETRIES
        self.max_retries = max_retries

    async def get(self, wallet_id: str) -> Optional[Wallet]:
        result = await self.db.execute(
            select(Wallet)
            .where(Wallet.wallet_id == wallet_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_subject(self, subject_id: str) -> Optional[Wallet]:
        result = await self.db.execute(
            select(Wallet)
            .where(Wallet.subject_id == subject_id)
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, subject_id: str, initial_balance: int = 0) -> Wallet:
        if initial_balance < 0:
            raise InvalidArgument("Initial balance cannot be negative")

        wallet = Wallet(
            wallet_id=new_wallet_id(),
            subject_id=subject_id,
            current_balance=initial_balance,
            version=1,
        )
        try:
            self.db.add(wallet)
            # Wallet row first so the audit row's foreign key resolves
            await self.db.flush()
            if initial_balance > 0:
                self.db.add(
                    WalletTransaction(
                        wallet_id=wallet.wallet_id,
                        delta=initial_balance,
                        balance_after=initial_balance,
                        kind=KIND_TOP_UP,
                    )
                )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            raise
        await self.db.refresh(wallet)
        logger.info(f"Created wallet {wallet.wallet_id} for subject {subject_id}")
        return wallet

    async def adjust(
        self,
        wallet_id: str,
        delta: int,
        kind: str,
        reference: Optional[str] = None,
    ) -> Wallet:
        """Apply ``delta`` to the balance; never lets it drop below zero."""
        for attempt in range(1, self.max_retries + 1):
            wallet = await self.get(wallet_id)
            if wallet is None:
                raise NotFound(f"Wallet {wallet_id} not found")

            new_balance = wallet.current_balance + delta
            if new_balance < 0:
                raise InsufficientFunds(required=-delta, balance=wallet.current_balance)

            try:
                result = await self.db.execute(
                    update(Wallet)
                    .where(
                        Wallet.wallet_id == wallet_id,
                        Wallet.version == wallet.version,
                    )
                    .values(current_balance=new_balance, version=wallet.version + 1)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    logger.warning(
                        f"Wallet {wallet_id} changed concurrently, retrying "
                        f"(attempt {attempt}/{self.max_retries})"
                    )
                    continue

                self.db.add(
                    WalletTransaction(
                        wallet_id=wallet_id,
                        delta=delta,
                        balance_after=new_balance,
                        kind=kind,
                        reference=reference,
                    )
                )
                await self.db.commit()
            except SQLAlchemyError:
                await self.db.rollback()
                raise

            logger.info(f"Wallet {wallet_id} adjusted by {delta}, balance now {new_balance}")
            return await self.get(wallet_id)

        raise Conflict(f"Wallet {wallet_id} is being updated concurrently, try again")

    async def top_up(self, wallet_id: str, amount: int) -> Wallet:
        if amount <= 0:
            raise InvalidArgument("Top up amount must be positive")
        return await self.adjust(wallet_id, amount, KIND_TOP_UP)

    async def deduct(self, wallet_id: str, amount: int, reference: Optional[str] = None) -> Wallet:
        if amount <= 0:
            raise InvalidArgument("Deduction amount must be positive")
        return await self.adjust(wallet_id, -amount, KIND_DEDUCTION, reference)

    async def list_transactions(self, wallet_id: str, limit: int = 50) -> List[WalletTransaction]:
        result = await self.db.execute(
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def deductions_for(self, reference: str) -> List[WalletTransaction]:
        result = await self.db.execute(
            select(WalletTransaction).where(
                WalletTransaction.reference == reference,
                WalletTransaction.kind == KIND_DEDUCTION,
            )
        )
        return list(result.scalars().all())
