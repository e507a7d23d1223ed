"""Parking lifecycle: check-in, checkout and payment settlement.

Session states::

    NONE -> ACTIVE -> CLOSED_UNPAID -> PAID
                            |
                            +-> CANCELLED

ACTIVE means ``exited_at`` is unset. CLOSED_UNPAID is a closed session whose
``payment_state`` is still ``pending``; PAID and CANCELLED are terminal.

The store has no transaction spanning a wallet and a session, so settlement
is two separate commits: the wallet is debited first and the session is
flipped to ``paid`` second. If the second commit never lands, the session
stays ``pending`` with a debited wallet. That state is logged and listed by
:meth:`ParkingCoordinator.list_unreconciled` for manual reconciliation. A
later checkout of the same session finds the deduction in the audit trail
and completes the flip without debiting again; nothing else fixes it up.
"""

import logging
import math
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Iterator, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from parkwallet.config import settings
from parkwallet.db.models import ParkingSession, Subject
from parkwallet.db.models.parking_session import (
    PAYMENT_CANCELLED,
    PAYMENT_PAID,
    PAYMENT_PENDING,
)
from parkwallet.db.types import utcnow
from parkwallet.errors import Conflict, Forbidden, Internal, InvalidArgument, NotFound
from parkwallet.schemas.parking_session import (
    CheckoutResult,
    HistoryFilter,
    HistoryPage,
    Pagination,
    ParkingSessionResponse,
)
from parkwallet.services.fees import FeePolicy
from parkwallet.store.directory import Directory
from parkwallet.store.ledger import Ledger
from parkwallet.store.sessions import SessionStore

logger = logging.getLogger(__name__)

STATUS_FILTERS = {
    "all": None,
    "paid": [PAYMENT_PAID],
    "pending": [PAYMENT_PENDING],
    "unpaid": [PAYMENT_PENDING],
    "cancelled": [PAYMENT_CANCELLED],
}


@contextmanager
def store_errors(action: str) -> Iterator[None]:
    """Report store failures as ``Internal``."""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Store failure while trying to {action}: {e}")
        raise Internal(f"Failed to {action}") from e


def _require(value: Optional[str], name: str) -> str:
    if value is None or not value.strip():
        raise InvalidArgument(f"{name} is required")
    return value.strip()


class ParkingCoordinator:
    """Runs the parking state machine against the store adapters."""

    def __init__(
        self,
        sessions: SessionStore,
        ledger: Ledger,
        directory: Directory,
        fees: Optional[FeePolicy] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.sessions = sessions
        self.ledger = ledger
        self.directory = directory
        self.fees = fees or FeePolicy.from_settings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Gate operations
    # ------------------------------------------------------------------

    async def check_in(self, credential: str, vehicle_tag: str) -> ParkingSessionResponse:
        credential = _require(credential, "RFID")
        vehicle_tag = _require(vehicle_tag, "Vehicle plate")

        with store_errors("check in"):
            subject = await self.directory.resolve_by_credential(credential)

            if not self.directory.is_vehicle_owned_by(subject, vehicle_tag):
                raise Forbidden("Vehicle plate is not registered to this user")

            if await self.sessions.get_active_by_vehicle(vehicle_tag) is not None:
                raise Conflict("This vehicle is already checked in")

            parking = await self.sessions.create(
                subject_id=subject.subject_id,
                vehicle_tag=vehicle_tag,
                entered_at=self.clock(),
                amount_due=self.fees.normal_rate,
            )

        logger.info(f"Vehicle {vehicle_tag} checked in by {subject.subject_id}")
        view = ParkingSessionResponse.model_validate(parking)
        view.vehicle_description = self.directory.vehicle_description(subject, vehicle_tag)
        return view

    async def check_out_and_pay(self, credential: str, vehicle_tag: str) -> CheckoutResult:
        credential = _require(credential, "RFID")
        vehicle_tag = _require(vehicle_tag, "Vehicle plate")

        with store_errors("check out"):
            subject = await self.directory.resolve_by_credential(credential)

            parking = await self.sessions.get_active_by_vehicle(vehicle_tag)
            if parking is None:
                # Retry path: the last checkout may have closed the session without paying
                parking = await self.sessions.get_unpaid_closed_by_vehicle(vehicle_tag)
            if parking is None:
                raise NotFound("No active parking session found")

            if parking.subject_id != subject.subject_id:
                raise Forbidden("You are not authorized to check out this parking session")

            if parking.exited_at is not None:
                logger.info(
                    f"Session {parking.session_id} already checked out, retrying payment "
                    f"of {parking.amount_due}"
                )
            else:
                parking = await self._check_out(parking)

        return await self._settle(parking, subject)

    async def _check_out(self, parking: ParkingSession) -> ParkingSession:
        exited_at = self.clock()
        duration_minutes, amount_due = self.fees.compute(parking.entered_at, exited_at)

        closed = await self.sessions.close(
            parking.session_id,
            exited_at=exited_at,
            duration_minutes=duration_minutes,
            amount_due=amount_due,
        )
        if not closed:
            # Someone else closed it between our read and our write
            raise Conflict("This parking session has already been checked out")

        logger.info(
            f"Session {parking.session_id} checked out after {duration_minutes} min, "
            f"amount due {amount_due}"
        )
        refreshed = await self.sessions.get(parking.session_id)
        if refreshed is None:
            raise Internal(f"Session {parking.session_id} vanished after checkout")
        return refreshed

    async def _settle(self, parking: ParkingSession, subject: Subject) -> CheckoutResult:
        subject_id = subject.subject_id
        description = self.directory.vehicle_description(subject, parking.vehicle_tag)

        with store_errors("process payment"):
            current = await self.sessions.get(parking.session_id)
            if current is None:
                raise NotFound("No active parking session found")
            if current.payment_state == PAYMENT_PAID:
                raise Conflict("This parking session has already been checked out and paid")
            if current.payment_state != PAYMENT_PENDING:
                raise Conflict(f"This parking session is {current.payment_state}")
            session_id = current.session_id
            amount = current.amount_due

            wallet = await self.ledger.get_for_subject(subject_id)
            if wallet is None:
                raise NotFound("Wallet not found")
            wallet_id = wallet.wallet_id

            # A session is debited at most once
            earlier = await self.ledger.deductions_for(session_id)
            debited = -sum(entry.delta for entry in earlier)
            if debited == 0:
                if amount > 0:
                    # Raises InsufficientFunds without touching the balance
                    await self.ledger.deduct(wallet_id, amount, reference=session_id)
            elif debited == amount:
                logger.warning(
                    f"Session {session_id} was already debited {debited} from wallet "
                    f"{wallet_id}; completing the payment without a new debit"
                )
            else:
                logger.error(
                    f"Session {session_id} was debited {debited} but {amount} is due; "
                    f"needs reconciliation"
                )
                raise Conflict("This parking session needs reconciliation before it can be paid")

        # The wallet is debited; only now may the session become paid
        try:
            flipped = await self.sessions.mark_paid(session_id, at=self.clock())
        except SQLAlchemyError as e:
            logger.error(
                f"Wallet {wallet_id} was debited {amount} but session {session_id} "
                f"could not be marked paid; needs reconciliation: {e}"
            )
            raise Internal("Payment was taken but the session could not be updated") from e

        if not flipped:
            logger.error(
                f"Wallet {wallet_id} was debited {amount} but session {session_id} "
                f"was left pending by a concurrent update; needs reconciliation"
            )
            raise Conflict("This parking session was settled concurrently")

        with store_errors("load the paid session"):
            paid = await self.sessions.get(session_id)

        logger.info(f"Session {session_id} paid {amount} from wallet {wallet_id}")
        view = ParkingSessionResponse.model_validate(paid)
        view.vehicle_description = description
        return CheckoutResult(
            session=view,
            amount_charged=amount,
            message=(
                "Successfully checked out and paid parking fee: "
                f"{settings.CURRENCY_LABEL} {amount}"
            ),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_active_for_subject(self, subject_id: str) -> ParkingSessionResponse:
        with store_errors("retrieve active parking session"):
            parking = await self.sessions.get_active_by_subject(subject_id)
        if parking is None:
            raise NotFound("No active parking session found")

        (view,) = await self._enrich([parking])
        return view

    async def get_active_for_vehicle(self, vehicle_tag: str) -> ParkingSessionResponse:
        vehicle_tag = _require(vehicle_tag, "Vehicle plate")
        with store_errors("retrieve active parking session"):
            parking = await self.sessions.get_active_by_vehicle(vehicle_tag)
        if parking is None:
            raise NotFound("No active parking session found")

        (view,) = await self._enrich([parking])
        return view

    async def get_history_for_subject(self, subject_id: str) -> List[ParkingSessionResponse]:
        with store_errors("retrieve parking history"):
            history = await self.sessions.list_by_subject(subject_id)
        logger.debug(f"Retrieved {len(history)} parking history records for {subject_id}")
        return await self._enrich(history)

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def list_active(self) -> List[ParkingSessionResponse]:
        with store_errors("retrieve active parking sessions"):
            active = await self.sessions.list_active()
        logger.info(f"Found {len(active)} active parking sessions")
        return await self._enrich(active)

    async def list_history(self, filters: HistoryFilter) -> HistoryPage:
        with store_errors("retrieve parking history"):
            records, total = await self.sessions.query(
                start_date=filters.start_date,
                end_date=filters.end_date,
                payment_states=STATUS_FILTERS[filters.status],
                sort_by=filters.sort_by,
                descending=filters.sort_order == "desc",
                offset=filters.offset,
                limit=filters.limit,
            )

        return HistoryPage(
            items=await self._enrich(records, with_owner=True),
            pagination=Pagination(
                total=total,
                page=filters.page,
                limit=filters.limit,
                pages=math.ceil(total / filters.limit),
            ),
        )

    async def list_unreconciled(self) -> List[ParkingSessionResponse]:
        """Sessions whose wallet was debited but which are still pending."""
        with store_errors("retrieve unreconciled sessions"):
            records = await self.sessions.list_debited_but_pending(
                limit=settings.RECONCILIATION_BATCH_LIMIT
            )
        if records:
            logger.warning(f"{len(records)} debited sessions are still pending")
        return await self._enrich(records, with_owner=True)

    async def cancel_unpaid(self, session_id: str) -> ParkingSessionResponse:
        session_id = _require(session_id, "Session id")
        with store_errors("cancel parking session"):
            parking = await self.sessions.get(session_id)
            if parking is None:
                raise NotFound(f"Parking session {session_id} not found")
            if parking.exited_at is None:
                raise Conflict("An active parking session cannot be cancelled")
            if parking.payment_state != PAYMENT_PENDING:
                raise Conflict(f"This parking session is already {parking.payment_state}")

            if not await self.sessions.mark_cancelled(session_id):
                raise Conflict("This parking session was settled concurrently")
            cancelled = await self.sessions.get(session_id)

        logger.info(f"Session {session_id} cancelled")
        return ParkingSessionResponse.model_validate(cancelled)

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    async def _enrich(
        self, records: List[ParkingSession], with_owner: bool = False
    ) -> List[ParkingSessionResponse]:
        """Add vehicle descriptions (and owner details) from the directory.

        Best effort: a directory failure leaves the extra fields empty instead
        of failing the whole listing.
        """
        views = [ParkingSessionResponse.model_validate(parking) for parking in records]

        for subject_id in dict.fromkeys(view.subject_id for view in views):
            try:
                owner = await self.directory.resolve_by_id(subject_id)
                for view in views:
                    if view.subject_id != subject_id:
                        continue
                    view.vehicle_description = self.directory.vehicle_description(
                        owner, view.vehicle_tag
                    )
                    if with_owner:
                        view.user_name = owner.username
                        view.user_email = owner.email
            except NotFound:
                continue
            except Exception as e:
                logger.warning(f"Failed to get directory info for {subject_id}: {e}")

        return views
