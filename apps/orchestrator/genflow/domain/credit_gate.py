"""Credit gate decision."""

from enum import Enum
from typing import Protocol


class CreditDecision(str, Enum):
    PROCEED = "proceed"
    REJECT = "reject"


class HasCredits(Protocol):
    credits: int


def evaluate_credit_gate(user: HasCredits) -> CreditDecision:
    """Approve the run only while the owner holds a positive balance."""
    if user.credits > 0:
        return CreditDecision.PROCEED
    return CreditDecision.REJECT
