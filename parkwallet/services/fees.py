"""Parking fee policy."""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Tuple

from parkwallet.config import settings


@dataclass(frozen=True)
class FeePolicy:
    """Flat tariff with a flat overstay penalty.

    A stay is billed ``normal_rate`` regardless of length. Once the stay
    reaches ``penalty_threshold_hours`` the charge is replaced by
    ``penalty_rate``; it is not added on top and does not grow with further
    days.
    """

    normal_rate: int = 2000
    penalty_rate: int = 10000
    penalty_threshold_hours: int = 24

    @classmethod
    def from_settings(cls) -> "FeePolicy":
        return cls(
            normal_rate=settings.NORMAL_RATE,
            penalty_rate=settings.PENALTY_RATE,
            penalty_threshold_hours=settings.PENALTY_THRESHOLD_HOURS,
        )

    def compute(self, entered_at: datetime, exited_at: datetime) -> Tuple[int, int]:
        """Return ``(duration_minutes, amount_due)`` for a stay.

        Partial minutes are billed as full minutes.
        """
        if exited_at < entered_at:
            raise ValueError(
                f"exited_at {exited_at.isoformat()} is before entered_at {entered_at.isoformat()}"
            )

        elapsed_seconds = (exited_at - entered_at).total_seconds()
        duration_minutes = math.ceil(elapsed_seconds / 60)

        amount_due = self.normal_rate
        if duration_minutes / 60 >= self.penalty_threshold_hours:
            amount_due = self.penalty_rate

        return duration_minutes, amount_due
