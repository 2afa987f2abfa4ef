"""IPC boundary between the privileged and restricted contexts."""

from hostbridge.bridge.console import IpcLogHandler
from hostbridge.bridge.ipc import IpcBus

__all__ = ["IpcBus", "IpcLogHandler"]
