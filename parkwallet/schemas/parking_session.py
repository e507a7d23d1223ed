"""ParkingSession schemas."""

from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class GateRequest(BaseModel):
    """Credential and plate presented at the gate."""

    credential: str = Field(..., min_length=1, max_length=128, description="RFID tag")
    vehicle_tag: str = Field(..., min_length=1, max_length=32, description="Licence plate")

    model_config = {"str_strip_whitespace": True}


class ParkingSessionResponse(BaseModel):
    """Schema for parking session response."""

    session_id: str
    subject_id: str
    vehicle_tag: str
    entered_at: datetime
    exited_at: Optional[datetime] = None
    amount_due: int
    duration_minutes: Optional[int] = None
    payment_state: str
    paid_at: Optional[datetime] = None
    is_active: bool

    # Best-effort directory enrichment
    vehicle_description: Optional[str] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None

    model_config = {"from_attributes": True}


class CheckoutResult(BaseModel):
    """Finalized session after a successful checkout and payment."""

    session: ParkingSessionResponse
    amount_charged: int
    message: str


class HistoryFilter(BaseModel):
    """Filters, sorting and paging for the admin history listing."""

    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    status: Literal["all", "paid", "pending", "unpaid", "cancelled"] = "all"
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=100, ge=1, le=500)
    sort_by: Literal["entered_at", "exited_at", "amount_due", "duration_minutes"] = "entered_at"
    sort_order: Literal["asc", "desc"] = "desc"

    @field_validator("start_date", "end_date")
    @classmethod
    def assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def check_range(self) -> "HistoryFilter":
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Pagination(BaseModel):
    """Paging information for list responses."""

    total: int
    page: int
    limit: int
    pages: int


class HistoryPage(BaseModel):
    """One page of admin history."""

    items: List[ParkingSessionResponse]
    pagination: Pagination
