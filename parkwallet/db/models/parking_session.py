"""ParkingSession model."""

from sqlalchemy import CheckConstraint, Column, Index, Integer, String

from parkwallet.db.base import Base
from parkwallet.db.types import UTCDateTime

PAYMENT_PENDING = "pending"
PAYMENT_PAID = "paid"
PAYMENT_CANCELLED = "cancelled"


class ParkingSession(Base):
    """One check-in to payment parking episode for a vehicle."""

    __tablename__ = "parking_sessions"

    session_id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), nullable=False, index=True)
    vehicle_tag = Column(String(32), nullable=False, index=True)

    entered_at = Column(UTCDateTime(), nullable=False)
    # NULL while the vehicle is still inside
    exited_at = Column(UTCDateTime(), nullable=True)

    amount_due = Column(Integer, nullable=False)
    duration_minutes = Column(Integer, nullable=True)
    payment_state = Column(String(16), nullable=False, default=PAYMENT_PENDING)
    paid_at = Column(UTCDateTime(), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "payment_state IN ('pending', 'paid', 'cancelled')",
            name="check_payment_state",
        ),
        CheckConstraint("amount_due >= 0", name="check_amount_due_non_negative"),
        # At most one open session per plate
        Index(
            "uq_parking_sessions_active_vehicle",
            "vehicle_tag",
            unique=True,
            postgresql_where=exited_at.is_(None),
            sqlite_where=exited_at.is_(None),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.exited_at is None

    def __repr__(self):
        return (
            f"<ParkingSession(session_id={self.session_id}, vehicle_tag={self.vehicle_tag}, "
            f"payment_state={self.payment_state})>"
        )
