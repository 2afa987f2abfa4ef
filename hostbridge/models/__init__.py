"""hostbridge data models — Pydantic v2, frozen (immutable)."""

from hostbridge.models.actions import NOOP, ActionResult, DispatchResult
from hostbridge.models.locator import Anchor, LocateMode, LocatorMatch
from hostbridge.models.modules import ModuleRecord
from hostbridge.models.trust import (
    VALID_TRANSITIONS,
    TrustDecision,
    TrustOutcome,
    TrustRequest,
    TrustState,
)
from hostbridge.models.transfer import ExportData

__all__ = [
    "NOOP",
    "ActionResult",
    "Anchor",
    "DispatchResult",
    "ExportData",
    "LocateMode",
    "LocatorMatch",
    "ModuleRecord",
    "TrustDecision",
    "TrustOutcome",
    "TrustRequest",
    "TrustState",
    "VALID_TRANSITIONS",
]
