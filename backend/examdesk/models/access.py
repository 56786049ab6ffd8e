"""Access decision models for starting an exam attempt"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel


class DenialReason(str, Enum):
    EXPIRED = "expired"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    INSUFFICIENT_FUNDS = "insufficient_funds"


DENIAL_MESSAGES = {
    DenialReason.EXPIRED: "This exam has expired and is no longer available.",
    DenialReason.ATTEMPTS_EXHAUSTED: "You have used all the allowed attempts for this exam.",
    DenialReason.INSUFFICIENT_FUNDS: "Your wallet balance is too low. Please top up your wallet first.",
}


class AccessDecision(BaseModel):
    allowed: bool
    reason: Optional[DenialReason] = None
    message: Optional[str] = None
    last_score: Optional[float] = None
    charged: bool = False
    amount_charged: float = 0
    attempts_used: int = 0
    attempts_remaining: int = 0

    @classmethod
    def allow(cls, attempts_used: int, attempts_remaining: int,
              charged: bool = False, amount_charged: float = 0) -> "AccessDecision":
        return cls(
            allowed=True,
            charged=charged,
            amount_charged=amount_charged,
            attempts_used=attempts_used,
            attempts_remaining=attempts_remaining,
        )

    @classmethod
    def deny(cls, reason: DenialReason, attempts_used: int = 0,
             attempts_remaining: int = 0, last_score: Optional[float] = None) -> "AccessDecision":
        return cls(
            allowed=False,
            reason=reason,
            message=DENIAL_MESSAGES[reason],
            last_score=last_score,
            attempts_used=attempts_used,
            attempts_remaining=attempts_remaining,
        )


class ExamState(BaseModel):
    """Per-student view of the attempt/expiry state machine."""
    state: Literal["open", "closed"]
    attempts_used: int
    attempts_remaining: int
