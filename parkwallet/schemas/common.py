"""Response envelopes."""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class Envelope(BaseModel, Generic[T]):
    """Success envelope wrapping every payload."""

    status: str = "success"
    message: Optional[str] = None
    data: T


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    status: str = "error"
    error: str
    message: str
    data: Optional[dict] = None
