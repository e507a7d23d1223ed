"""Settlement reconciliation scan."""

import logging
from typing import Dict, List

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from parkwallet.config import settings
from parkwallet.store.ledger import Ledger
from parkwallet.store.sessions import SessionStore
from parkwallet.tasks.broker import broker

logger = logging.getLogger(__name__)


async def scan_unreconciled(db: AsyncSession, limit: int) -> Dict:
    """Report sessions that were debited but never flipped to paid.

    Nothing is modified: each finding needs a human to decide whether to mark
    the session paid or refund the wallet.
    """
    sessions = SessionStore(db)
    ledger = Ledger(db)

    findings: List[Dict] = []
    for parking in await sessions.list_debited_but_pending(limit=limit):
        deductions = await ledger.deductions_for(parking.session_id)
        debited = -sum(entry.delta for entry in deductions)
        findings.append(
            {
                "session_id": parking.session_id,
                "subject_id": parking.subject_id,
                "vehicle_tag": parking.vehicle_tag,
                "amount_due": parking.amount_due,
                "amount_debited": debited,
                "deductions": len(deductions),
            }
        )
        logger.error(
            f"Session {parking.session_id} is pending but wallet was debited {debited} "
            f"in {len(deductions)} deduction(s)"
        )

    if not findings:
        logger.info("Reconciliation scan found no debited pending sessions")

    return {"unreconciled": len(findings), "sessions": findings}


@broker.task(schedule=[{"cron": settings.RECONCILIATION_CRON}])
async def reconcile_settlements_task(limit: int = 0) -> Dict:
    """Periodic scan for the debit-then-flip window left open by a failed settlement."""
    limit = limit or settings.RECONCILIATION_BATCH_LIMIT

    engine = create_async_engine(settings.DATABASE_URL)
    async_session = async_sessionmaker(engine, expire_on_commit=False)

    try:
        async with async_session() as session:
            return await scan_unreconciled(session, limit)
    finally:
        await engine.dispose()
