"""WalletTransaction model."""

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, String

from parkwallet.db.base import Base
from parkwallet.db.types import UTCDateTime, utcnow

KIND_TOP_UP = "top_up"
KIND_DEDUCTION = "deduction"


class WalletTransaction(Base):
    """Append-only audit entry for a single balance change."""

    __tablename__ = "wallet_transactions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    wallet_id = Column(
        String(64),
        ForeignKey("wallets.wallet_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    delta = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    kind = Column(String(16), nullable=False)
    # Parking session id for deductions
    reference = Column(String(64), nullable=True, index=True)
    created_at = Column(UTCDateTime(), default=utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint("kind IN ('top_up', 'deduction')", name="check_kind"),
    )

    def __repr__(self):
        return f"<WalletTransaction(id={self.id}, kind={self.kind}, delta={self.delta})>"
