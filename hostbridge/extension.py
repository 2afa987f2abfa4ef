"""Extension scope — what one third-party extension sees of the bridge.

Every reversible registration goes into the extension's ``UnloadSet`` so
``unload()`` tears it all down at once.  Native calls go through the IPC
bus exactly as they would from the restricted side.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from hostbridge.context import LOAD_NATIVE_CHANNEL, REGISTER_NATIVE_CHANNEL
from hostbridge.core.unloads import UnloadHandle, UnloadSet, unload_all, unloader

if TYPE_CHECKING:
    from hostbridge.context import BridgeContext

logger = logging.getLogger(__name__)


class Extension:
    """Registrations and native access owned by one extension label."""

    def __init__(self, context: BridgeContext, label: str) -> None:
        self.context = context
        self.label = label
        self.unloads = UnloadSet()

    def intercept(
        self, action: str, callback: Callable[..., Any], once: bool = False
    ) -> UnloadHandle:
        handle = self.context.registry.subscribe(action, callback, once, source=self.label)
        self.unloads.add(handle)
        return handle

    def add_unload(self, fn: Callable[[], Any], name: str | None = None) -> UnloadHandle:
        handle = unloader(fn, source=self.label, name=name)
        self.unloads.add(handle)
        return handle

    async def load_native(self, file_name: str, logical_name: str) -> str:
        return await self.context.bus.invoke(LOAD_NATIVE_CHANNEL, file_name, logical_name)

    async def register_native(self, code: str) -> None:
        await self.context.bus.invoke(REGISTER_NATIVE_CHANNEL, code, self.label)

    async def call_native(self, channel: str, export_name: str, *args: Any) -> Any:
        return await self.context.bus.invoke(channel, export_name, *args)

    async def unload(self) -> None:
        """Run every teardown this extension registered."""
        logger.info("Unloading extension %s (%d handle(s)).", self.label, len(self.unloads))
        await unload_all(self.unloads, timeout=self.context.config.unload_timeout_seconds)

    def __repr__(self) -> str:
        return f"Extension(label={self.label!r}, unloads={len(self.unloads)})"
