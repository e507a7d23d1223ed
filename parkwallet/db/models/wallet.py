"""Wallet model."""

from sqlalchemy import CheckConstraint, Column, Integer, String

from parkwallet.db.base import Base
from parkwallet.db.types import UTCDateTime, utcnow


class Wallet(Base):
    """Prepaid balance held by one subject."""

    __tablename__ = "wallets"

    wallet_id = Column(String(64), primary_key=True)
    subject_id = Column(String(64), nullable=False, unique=True)
    current_balance = Column(Integer, nullable=False, default=0)
    # Bumped on every balance write; used for compare-and-set updates
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("current_balance >= 0", name="check_balance_non_negative"),
    )

    def __repr__(self):
        return f"<Wallet(wallet_id={self.wallet_id}, balance={self.current_balance})>"
