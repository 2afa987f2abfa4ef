"""Native module records."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ModuleRecord(BaseModel):
    """A loaded native module: its exports and the channel that proxies them."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    logical_name: str
    file_name: str
    path: Path
    channel: str
    exports: Any = Field(repr=False)
    loaded_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @property
    def export_names(self) -> list[str]:
        return sorted(
            name for name in vars(self.exports)
            if not name.startswith("_") and callable(getattr(self.exports, name))
        )
