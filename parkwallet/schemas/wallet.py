"""Wallet schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TopUpRequest(BaseModel):
    """Schema for topping up the caller's own wallet."""

    amount: int = Field(..., gt=0)


class AdminTopUpRequest(TopUpRequest):
    """Schema for topping up any subject's wallet."""

    subject_id: str = Field(..., min_length=1, max_length=64)


class WalletResponse(BaseModel):
    """Schema for wallet response."""

    wallet_id: str
    subject_id: str
    current_balance: int

    model_config = {"from_attributes": True}


class WalletTransactionResponse(BaseModel):
    """Schema for a wallet audit entry."""

    id: str
    wallet_id: str
    delta: int
    balance_after: int
    kind: str
    reference: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}
