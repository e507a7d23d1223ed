"""Database models package."""

from parkwallet.db.base import Base
from parkwallet.db.models.parking_session import ParkingSession
from parkwallet.db.models.subject import Subject
from parkwallet.db.models.wallet import Wallet
from parkwallet.db.models.wallet_transaction import WalletTransaction

__all__ = [
    "Base",
    "ParkingSession",
    "Subject",
    "Wallet",
    "WalletTransaction",
]
