"""Schemas package."""

from parkwallet.schemas.common import Envelope, ErrorResponse
from parkwallet.schemas.parking_session import (
    CheckoutResult,
    GateRequest,
    HistoryFilter,
    HistoryPage,
    Pagination,
    ParkingSessionResponse,
)
from parkwallet.schemas.wallet import (
    AdminTopUpRequest,
    TopUpRequest,
    WalletResponse,
    WalletTransactionResponse,
)

__all__ = [
    "Envelope",
    "ErrorResponse",
    "CheckoutResult",
    "GateRequest",
    "HistoryFilter",
    "HistoryPage",
    "Pagination",
    "ParkingSessionResponse",
    "AdminTopUpRequest",
    "TopUpRequest",
    "WalletResponse",
    "WalletTransactionResponse",
]
