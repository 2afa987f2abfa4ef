"""Action dispatch models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict


class ActionResult(BaseModel):
    """Neutral result returned in place of a cancelled action."""

    model_config = ConfigDict(frozen=True)

    type: str


NOOP = ActionResult(type="NOOP")


class DispatchResult(BaseModel):
    """Outcome of one dispatch through the interception registry."""

    model_config = ConfigDict(frozen=True)

    action: str
    invoked: int = 0
    errors: int = 0
    cancelled: bool = False
