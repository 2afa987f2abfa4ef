"""Settings export / import.

Dumps named key-value stores into a versioned ``ExportData`` document and
restores them.  The trust store is deliberately not part of an export:
trust is granted per machine by the user.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, MutableMapping
from typing import Any

from pydantic import ValidationError

from hostbridge.models.transfer import ExportData

logger = logging.getLogger(__name__)


def dump(
    stores: Mapping[str, Mapping[str, Any]],
    feature_flags: dict[str, bool] | None = None,
) -> ExportData:
    return ExportData(
        stores={name: dict(store) for name, store in stores.items()},
        feature_flags=feature_flags,
    )


def restore(data: ExportData, stores: Mapping[str, MutableMapping[str, Any]]) -> list[str]:
    """Replace the contents of each store present in *data*.

    Stores missing from the export are left untouched.  Returns the names
    of the stores restored.
    """
    restored: list[str] = []
    for name, store in stores.items():
        values = data.stores.get(name)
        if values is None:
            continue
        store.clear()
        store.update(values)
        restored.append(name)
    logger.info("Restored %d store(s) from export of %s.", len(restored), data.timestamp)
    return restored


def validate(raw: Any) -> bool:
    """Return ``True`` if *raw* (a dict or JSON text) is a loadable export."""
    try:
        if isinstance(raw, (str, bytes)):
            ExportData.model_validate_json(raw)
        else:
            ExportData.model_validate(raw)
    except ValidationError as exc:
        logger.debug("Rejected settings export: %s", exc)
        return False
    return True


def load(raw: str | bytes) -> ExportData:
    """Parse JSON export text.  Raises ``pydantic.ValidationError`` if invalid."""
    return ExportData.model_validate_json(raw)
