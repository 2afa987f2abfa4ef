"""Bridge context — the single owner of process-wide mutable state.

One ``BridgeContext`` holds the interception registry, the trust store, the
module cache and the IPC bus, and passes them by reference to the
components that need them.  Tests build a fresh context per case.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from hostbridge.bridge.ipc import IpcBus
from hostbridge.config import BridgeConfig, config as default_config
from hostbridge.core.unloads import UnloadSet, unload_all
from hostbridge.intercept.host_loader import HostModuleLoader
from hostbridge.intercept.registry import InterceptionRegistry
from hostbridge.native.module_bridge import ModuleBridge
from hostbridge.native.sandbox import Fetch, NativeSandbox
from hostbridge.native.trust_gate import TrustGate
from hostbridge.native.trust_store import TrustStore

if TYPE_CHECKING:
    from hostbridge.extension import Extension

logger = logging.getLogger(__name__)

LOAD_NATIVE_CHANNEL = "loadNative"
REGISTER_NATIVE_CHANNEL = "registerNative"


class BridgeContext:
    """Wires registry, trust store, trust gate, module bridge and IPC together.

    Parameters
    ----------
    settings:
        Configuration; defaults to the module-level ``config`` singleton.
    bus:
        IPC bus to use; a fresh one is created when omitted.
    trust_store:
        Trust store to use; loaded from ``settings.trust_store_path`` when omitted.
    fetch:
        Source fetcher for relative imports inside native payloads.
    """

    def __init__(
        self,
        settings: BridgeConfig | None = None,
        *,
        bus: IpcBus | None = None,
        trust_store: TrustStore | None = None,
        fetch: Fetch | None = None,
    ) -> None:
        self.config = settings or default_config
        self.bus = bus or IpcBus("main")
        self.registry = InterceptionRegistry()
        self.host_loader = HostModuleLoader(self.registry)
        self.trust_store = (
            trust_store if trust_store is not None
            else TrustStore(Path(self.config.trust_store_path))
        )
        self.sandbox = NativeSandbox(
            allowed=self.config.allowed_modules,
            blocked=self.config.blocked_modules,
            fetch=fetch,
        )
        self.trust_gate = TrustGate(
            self.trust_store,
            self.bus,
            sandbox=self.sandbox,
            timeout=self.config.trust_timeout_seconds,
            rejection_ttl=self.config.rejection_ttl_seconds,
        )
        self.module_bridge = ModuleBridge(
            self.bus,
            Path(self.config.native_dir),
            namespace=self.config.channel_namespace,
        )
        self._installed = UnloadSet()

    @property
    def installed(self) -> bool:
        return len(self._installed) > 0

    def install(self) -> BridgeContext:
        """Register the ``loadNative`` and ``registerNative`` IPC handlers."""
        self._installed.add(
            self.bus.handle(LOAD_NATIVE_CHANNEL, self.module_bridge.load_module)
        )
        self._installed.add(
            self.bus.handle(REGISTER_NATIVE_CHANNEL, self.trust_gate.register_native)
        )
        logger.info("Bridge installed (namespace=%s).", self.config.channel_namespace)
        return self

    async def uninstall(self) -> None:
        await unload_all(self._installed, timeout=self.config.unload_timeout_seconds)

    def extension(self, label: str) -> Extension:
        """Create an extension scope owning its own unload set."""
        from hostbridge.extension import Extension

        return Extension(self, label)


def create_context(settings: BridgeConfig | None = None, **kwargs: Any) -> BridgeContext:
    """Build and install a context."""
    return BridgeContext(settings, **kwargs).install()
