"""Failure taxonomy shared by the store adapters, the coordinator and the API."""

from typing import Any, Dict, Optional

from fastapi import status


class ParkingError(Exception):
    """Base class for every failure the service reports to its callers."""

    kind = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "status": "error",
            "error": self.kind,
            "message": self.message,
        }
        if self.data is not None:
            body["data"] = self.data
        return body


class InvalidArgument(ParkingError):
    kind = "invalid_argument"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(ParkingError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class Forbidden(ParkingError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class Conflict(ParkingError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class InsufficientFunds(ParkingError):
    """Balance is below the amount that has to be paid."""

    kind = "insufficient_funds"
    status_code = status.HTTP_402_PAYMENT_REQUIRED

    def __init__(self, required: int, balance: int):
        super().__init__(
            "Insufficient balance",
            data={"required": required, "balance": balance},
        )
        self.required = required
        self.balance = balance


class Internal(ParkingError):
    kind = "internal"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
