"""Trust decisions, request states and the transition table."""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict


class TrustDecision(IntEnum):
    """Response codes sent back over ``trustResponse:<hash>:<timestamp>``."""

    BLOCK = 0
    ALLOW_ONCE = 1
    ALLOW_ALWAYS = 2


class TrustState(str, Enum):
    """States of one native code request passing through the trust gate."""

    IDLE = "idle"
    HASH_COMPUTED = "hash_computed"
    TRUSTED = "trusted"
    AWAITING_DECISION = "awaiting_decision"
    APPROVED = "approved"
    REJECTED = "rejected"
    TERMINAL = "terminal"


# Enforced by TrustGate.
VALID_TRANSITIONS: dict[TrustState, set[TrustState]] = {
    TrustState.IDLE: {TrustState.HASH_COMPUTED},
    TrustState.HASH_COMPUTED: {
        TrustState.TRUSTED,
        TrustState.AWAITING_DECISION,
        TrustState.REJECTED,  # session-cached rejection
    },
    TrustState.TRUSTED: {TrustState.APPROVED},
    TrustState.AWAITING_DECISION: {TrustState.APPROVED, TrustState.REJECTED},
    TrustState.APPROVED: {TrustState.TERMINAL},
    TrustState.REJECTED: {TrustState.TERMINAL},
    TrustState.TERMINAL: set(),  # terminal
}


class TrustRequest(BaseModel):
    """Notification payload sent on ``requestTrust``."""

    model_config = ConfigDict(frozen=True)

    plugin_label: str
    hash: str
    timestamp: int  # epoch milliseconds

    @property
    def response_channel(self) -> str:
        return f"trustResponse:{self.hash}:{self.timestamp}"


class TrustOutcome(BaseModel):
    """Terminal result of one pass through the trust gate."""

    model_config = ConfigDict(frozen=True)

    hash: str
    plugin_label: str
    approved: bool
    decision: TrustDecision | None = None  # None on the trusted path
    prompted: bool = False
    timed_out: bool = False
    history: list[TrustState] = []
