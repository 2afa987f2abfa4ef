"""Forward privileged-side log records to the restricted side.

The restricted side has the developer console; the privileged side does
not.  ``IpcLogHandler`` sends ``(level, message)`` on the ``console``
channel for every record it handles.
"""

from __future__ import annotations

import logging

from hostbridge.bridge.ipc import IpcBus

CONSOLE_CHANNEL = "console"


class IpcLogHandler(logging.Handler):
    """``logging.Handler`` that forwards formatted records over an ``IpcBus``."""

    def __init__(
        self,
        bus: IpcBus,
        channel: str = CONSOLE_CHANNEL,
        *,
        prefix: str = "[native]",
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        self._bus = bus
        self._channel = channel
        self._prefix = prefix
        self._emitting = False

    def emit(self, record: logging.LogRecord) -> None:
        # A failing console listener logs through us again; drop that record.
        if self._emitting:
            return
        self._emitting = True
        try:
            message = f"{self._prefix} {self.format(record)}"
            self._bus.send(self._channel, record.levelname.lower(), message)
        except Exception:
            self.handleError(record)
        finally:
            self._emitting = False
