"""
Cooldown policy: decides whether a wallet may claim, given its ledger record.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from .config import CLAIM_COOLDOWN

if TYPE_CHECKING:
    from .db import ClaimRecord


@dataclass(frozen=True)
class Eligibility:
    eligible: bool
    first_time: bool = False
    last_claim_time: Optional[datetime] = None
    next_claim_time: Optional[datetime] = None
    time_remaining: Optional[timedelta] = None

    @property
    def time_remaining_ms(self) -> Optional[int]:
        if self.time_remaining is None:
            return None
        return int(self.time_remaining / timedelta(milliseconds=1))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def evaluate_eligibility(
    record: Optional["ClaimRecord"],
    now: datetime,
    cooldown: timedelta = CLAIM_COOLDOWN,
) -> Eligibility:
    """
    Apply the cooldown rule.

    A wallet with no record is eligible for its first claim. Otherwise it is
    eligible once ``now - last_claim >= cooldown`` (the boundary itself counts).
    """
    if record is None:
        return Eligibility(eligible=True, first_time=True)

    last_claim = record.last_claim_timestamp
    next_claim = last_claim + cooldown

    if now >= next_claim:
        return Eligibility(eligible=True, last_claim_time=last_claim)

    return Eligibility(
        eligible=False,
        last_claim_time=last_claim,
        next_claim_time=next_claim,
        time_remaining=next_claim - now,
    )


def format_time_remaining(remaining: timedelta) -> str:
    """Render a countdown as ``1h 2m 3s`` / ``2m 3s`` / ``3s``."""
    total = int(remaining.total_seconds())
    if total <= 0:
        return "Available now"

    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)

    if hours:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"
