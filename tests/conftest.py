"""Shared test fixtures for hostbridge."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from hostbridge.bridge.ipc import IpcBus
from hostbridge.config import BridgeConfig
from hostbridge.context import BridgeContext
from hostbridge.intercept.registry import InterceptionRegistry
from hostbridge.native.trust_store import TrustStore

HOST_SOURCE = '''\
_store = None


def set_store(store):
    global _store
    _store = store


def get_store():
    if _store is None:
        raise RuntimeError("No global store set")
    return _store


def prepare_action(action_type, prepare=None):
    def action_creator(*args):
        if prepare is not None:
            prepared = prepare(*args)
            action = {"type": action_type, "payload": prepared["payload"]}
            if "meta" in prepared:
                action["meta"] = prepared["meta"]
            return action
        return {"type": action_type, "payload": args[0] if args else None}
    return action_creator


set_store({"name": "host-store"})
play = prepare_action("playback/PLAY")
pause = prepare_action("playback/PAUSE", lambda position: {"payload": position, "meta": "user"})
'''

NATIVE_MODULE_SOURCE = '''\
import asyncio


def greet(name):
    return f"hello {name}"


async def slow_add(a, b):
    await asyncio.sleep(0)
    return a + b


def explode():
    raise ValueError("boom")


_private = "hidden"
'''


@pytest.fixture
def host_source() -> str:
    """Python host module carrying both locator anchors."""
    return HOST_SOURCE


@pytest.fixture
def registry() -> InterceptionRegistry:
    """Provide a fresh interception registry."""
    return InterceptionRegistry()


@pytest.fixture
def bus() -> IpcBus:
    """Provide a fresh IPC bus."""
    return IpcBus("test")


@pytest.fixture
def trust_store(tmp_path: Path) -> TrustStore:
    """Provide a trust store persisted under tmp_path."""
    return TrustStore(tmp_path / "trusted-native.json")


@pytest.fixture
def native_dir(tmp_path: Path) -> Path:
    """Trusted native directory holding one sample module."""
    directory = tmp_path / "native"
    directory.mkdir()
    (directory / "plugin_x.native.py").write_text(NATIVE_MODULE_SOURCE, encoding="utf-8")
    return directory


@pytest.fixture
def bridge_config(tmp_path: Path, native_dir: Path) -> BridgeConfig:
    """Configuration pointing every path at tmp_path, with a short trust window."""
    return BridgeConfig(
        native_dir=native_dir,
        trust_store_path=tmp_path / "trusted-native.json",
        trust_timeout_seconds=0.2,
        unload_timeout_seconds=0.2,
    )


@pytest.fixture
def context(bridge_config: BridgeConfig) -> BridgeContext:
    """Provide an installed BridgeContext."""
    return BridgeContext(bridge_config).install()


@pytest.fixture
def trust_responder() -> Callable[..., Callable[..., Any]]:
    """Factory: a restricted-side trust dialog that answers with a fixed code.

    The returned listener records every prompt in ``listener.prompts``.
    """

    def _factory(bus: IpcBus, code: int | None) -> Callable[..., Any]:
        def listener(plugin_label: str, code_hash: str, timestamp: int) -> None:
            listener.prompts.append((plugin_label, code_hash, timestamp))
            if code is not None:
                bus.send(f"trustResponse:{code_hash}:{timestamp}", code)

        listener.prompts = []  # type: ignore[attr-defined]
        bus.on("requestTrust", listener)
        return listener

    return _factory
