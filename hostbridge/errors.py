"""Exception hierarchy for hostbridge.

Only errors that invalidate a caller's specific request are raised to that
caller.  Faults local to one interceptor, module export or unload handle are
logged where they happen and never escalate past them.
"""

from __future__ import annotations


class HostBridgeError(RuntimeError):
    """Base class for all hostbridge errors."""


class IpcError(HostBridgeError):
    """Raised when an IPC invoke targets a channel with no handler."""


class SecurityViolation(HostBridgeError):
    """Raised when a request tries to escape its trusted boundary.

    Currently: a native module file name containing a path separator or a
    parent-directory segment.  Raised before any filesystem access.
    """


class NativeModuleError(HostBridgeError):
    """A native module failed to load, or one of its exports raised.

    Carries the logical module name and (for call failures) the export name
    so the restricted side can render a diagnosable message.
    """

    def __init__(
        self, message: str, *, logical_name: str, export_name: str | None = None
    ) -> None:
        self.logical_name = logical_name
        self.export_name = export_name
        if export_name is not None:
            context = f"[native] ({logical_name}).{export_name}"
        else:
            context = f"[native] ({logical_name})"
        super().__init__(f"{context}: {message}")


class NativeExecutionBlocked(HostBridgeError):
    """The trust gate rejected a native code payload (explicit block or timeout)."""

    def __init__(self, plugin_label: str, code_hash: str, *, timed_out: bool = False) -> None:
        self.plugin_label = plugin_label
        self.code_hash = code_hash
        self.timed_out = timed_out
        reason = "no decision within the trust window" if timed_out else "user blocked execution"
        super().__init__(
            f"[native] Execution of native code from {plugin_label} blocked: {reason}"
        )


class NativeExecutionError(HostBridgeError):
    """An approved native code payload raised while executing."""

    def __init__(self, plugin_label: str, cause: BaseException) -> None:
        self.plugin_label = plugin_label
        super().__init__(
            f"[native] Failed to execute native code from {plugin_label}: {cause}"
        )


class InvalidTrustTransition(HostBridgeError):
    """Raised when the trust gate is asked to make a transition its table forbids."""
