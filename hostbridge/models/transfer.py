"""Settings export format."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class ExportData(BaseModel):
    """A portable dump of extension settings stores.

    ``version`` is pinned so future readers can load older exports.
    """

    model_config = ConfigDict(frozen=True)

    version: Literal[1] = 1
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    stores: dict[str, dict[str, Any]] = Field(default_factory=dict)
    feature_flags: dict[str, bool] | None = None
