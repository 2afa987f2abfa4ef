"""Module bridge — loads native modules and proxies calls to their exports.

Each module file lives in one trusted directory.  ``load_module`` imports it
under a logical name, caches the exports as a ``ModuleRecord`` and registers
a call channel ``<namespace>.<logical_name>``.  Invoking that channel with
``(export_name, *args)`` calls the export and returns (or awaits) its result.

File names are validated before any filesystem access: no path separators,
no parent-directory segments.
"""

from __future__ import annotations

import importlib.machinery
import importlib.util
import inspect
import logging
import re
import types
from pathlib import Path
from typing import Any

from hostbridge.bridge.ipc import IpcBus
from hostbridge.errors import NativeModuleError, SecurityViolation
from hostbridge.models.modules import ModuleRecord

logger = logging.getLogger(__name__)

FILE_NAME_PATTERN = re.compile(r"^[^/\\]+$")
DEFAULT_NAMESPACE = "__HostBridgeNative"


def validate_file_name(file_name: str) -> str:
    """Return *file_name* unchanged if it is a plain file name.

    Raises
    ------
    SecurityViolation
        If it contains ``/``, ``\\`` or ``..``, or is empty.
    """
    if not FILE_NAME_PATTERN.match(file_name) or ".." in file_name:
        logger.warning("Rejected native module file name %r.", file_name)
        raise SecurityViolation(
            f"[native] Security Error: Invalid filename for native module: {file_name!r}"
        )
    return file_name


def _module_name(logical_name: str) -> str:
    return "hostbridge_native_" + re.sub(r"\W", "_", logical_name)


class ModuleBridge:
    """Loads native modules from a trusted directory and exposes their exports.

    Parameters
    ----------
    bus:
        IPC bus that receives one call channel per module.
    native_dir:
        The only directory modules are loaded from.
    namespace:
        Prefix of every call channel.

    Examples
    --------
    >>> from pathlib import Path
    >>> bridge = ModuleBridge(IpcBus(), Path("/tmp/native"))
    >>> bridge.channel_for("lyrics")
    '__HostBridgeNative.lyrics'
    """

    def __init__(
        self,
        bus: IpcBus,
        native_dir: Path,
        *,
        namespace: str = DEFAULT_NAMESPACE,
    ) -> None:
        self._bus = bus
        self._native_dir = native_dir
        self._namespace = namespace
        self.modules: dict[str, ModuleRecord] = {}

    @property
    def native_dir(self) -> Path:
        return self._native_dir

    def channel_for(self, logical_name: str) -> str:
        return f"{self._namespace}.{logical_name}"

    def get(self, logical_name: str) -> ModuleRecord | None:
        return self.modules.get(logical_name)

    # -- Loading ------------------------------------------------------------

    def load_module(self, file_name: str, logical_name: str) -> str:
        """Load *file_name* as *logical_name* and return its call channel.

        Reloading replaces the cached record and the channel handler.

        Raises
        ------
        SecurityViolation
            If *file_name* is not a plain file name.
        NativeModuleError
            If the module cannot be imported.
        """
        validate_file_name(file_name)
        path = self._native_dir / file_name

        try:
            exports = self._import(path, logical_name)
        except Exception as exc:
            logger.exception(
                "Failed to load native module %s from %s", logical_name, file_name
            )
            raise NativeModuleError(
                f"failed to load {file_name}: {exc}", logical_name=logical_name
            ) from exc

        channel = self.channel_for(logical_name)
        self.modules[logical_name] = ModuleRecord(
            logical_name=logical_name,
            file_name=file_name,
            path=path,
            channel=channel,
            exports=exports,
        )
        self._bus.handle(channel, self._call_handler(logical_name, exports))
        logger.info("Loaded native module %s from %s on '%s'", logical_name, file_name, channel)
        return channel

    def _import(self, path: Path, logical_name: str) -> types.ModuleType:
        if not path.is_file():
            raise FileNotFoundError(f"No native module at {path}")
        name = _module_name(logical_name)
        # explicit loader: module files need not end in .py
        loader = importlib.machinery.SourceFileLoader(name, str(path))
        spec = importlib.util.spec_from_file_location(name, path, loader=loader)
        if spec is None:
            raise ImportError(f"Cannot build import spec for {path}")
        module = importlib.util.module_from_spec(spec)
        loader.exec_module(module)
        return module

    # -- Calls --------------------------------------------------------------

    @staticmethod
    def _call_handler(logical_name: str, exports: types.ModuleType) -> Any:
        async def call_export(export_name: str, *args: Any) -> Any:
            try:
                export = getattr(exports, export_name, None)
                if export_name.startswith("_") or not callable(export):
                    raise AttributeError(f"no callable export named '{export_name}'")
                result = export(*args)
                if inspect.isawaitable(result):
                    result = await result
                return result
            except Exception as exc:
                raise NativeModuleError(
                    f"{type(exc).__name__}: {exc}",
                    logical_name=logical_name,
                    export_name=export_name,
                ) from exc

        return call_export

    async def call(self, logical_name: str, export_name: str, *args: Any) -> Any:
        """Call an export through its channel, as the restricted side would."""
        return await self._bus.invoke(self.channel_for(logical_name), export_name, *args)
