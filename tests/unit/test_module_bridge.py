"""Tests for the native module bridge."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from hostbridge.bridge.ipc import IpcBus
from hostbridge.errors import NativeModuleError, SecurityViolation
from hostbridge.native.module_bridge import ModuleBridge, validate_file_name


@pytest.fixture
def bridge(bus: IpcBus, native_dir: Path) -> ModuleBridge:
    return ModuleBridge(bus, native_dir)


class TestFileNameValidation:
    @pytest.mark.parametrize(
        "file_name", ["../evil.mjs", "a/b.mjs", "a\\b.mjs", "", "..", "plugin..py"]
    )
    def test_rejected(self, file_name: str):
        with pytest.raises(SecurityViolation):
            validate_file_name(file_name)

    def test_plain_name_accepted(self):
        assert validate_file_name("plugin_x.native.mjs") == "plugin_x.native.mjs"

    def test_rejected_before_filesystem_access(self, bridge: ModuleBridge, monkeypatch):
        def fail(*args, **kwargs):
            raise AssertionError("filesystem touched")

        monkeypatch.setattr(bridge, "_import", fail)
        with pytest.raises(SecurityViolation):
            bridge.load_module("../../etc/passwd", "evil")
        assert bridge.modules == {}


class TestLoadAndCall:
    def test_load_returns_namespaced_channel(self, bridge: ModuleBridge, bus: IpcBus):
        channel = bridge.load_module("plugin_x.native.py", "plugin_x")
        assert channel == "__HostBridgeNative.plugin_x"
        assert bus.has_handler(channel)
        record = bridge.get("plugin_x")
        assert record is not None
        assert record.export_names == ["explode", "greet", "slow_add"]

    def test_sync_and_async_exports(self, bridge: ModuleBridge):
        bridge.load_module("plugin_x.native.py", "plugin_x")
        assert asyncio.run(bridge.call("plugin_x", "greet", "world")) == "hello world"
        assert asyncio.run(bridge.call("plugin_x", "slow_add", 2, 3)) == 5

    def test_export_error_annotated(self, bridge: ModuleBridge):
        bridge.load_module("plugin_x.native.py", "plugin_x")
        with pytest.raises(NativeModuleError) as excinfo:
            asyncio.run(bridge.call("plugin_x", "explode"))
        err = excinfo.value
        assert str(err).startswith("[native] (plugin_x).explode:")
        assert "boom" in str(err)
        assert isinstance(err.__cause__, ValueError)

    @pytest.mark.parametrize("export_name", ["_private", "missing", "asyncio"])
    def test_non_callable_or_private_rejected(self, bridge: ModuleBridge, export_name: str):
        bridge.load_module("plugin_x.native.py", "plugin_x")
        with pytest.raises(NativeModuleError, match=export_name):
            asyncio.run(bridge.call("plugin_x", export_name))

    def test_missing_file(self, bridge: ModuleBridge):
        with pytest.raises(NativeModuleError, match=r"\(ghost\)"):
            bridge.load_module("ghost.py", "ghost")
        assert bridge.get("ghost") is None

    def test_import_failure(self, bridge: ModuleBridge, native_dir: Path):
        (native_dir / "broken.py").write_text("import nonexistent_module_xyz\n")
        with pytest.raises(NativeModuleError) as excinfo:
            bridge.load_module("broken.py", "broken")
        assert isinstance(excinfo.value.__cause__, ImportError)

    def test_reload_replaces_record_and_handler(self, bridge: ModuleBridge, native_dir: Path):
        (native_dir / "v2.py").write_text("def greet(name):\n    return f'hi {name}'\n")
        bridge.load_module("plugin_x.native.py", "plugin_x")
        first = bridge.get("plugin_x")
        bridge.load_module("v2.py", "plugin_x")
        assert bridge.get("plugin_x") is not first
        assert bridge.get("plugin_x").file_name == "v2.py"
        assert asyncio.run(bridge.call("plugin_x", "greet", "x")) == "hi x"

    def test_custom_namespace(self, bus: IpcBus, native_dir: Path):
        bridge = ModuleBridge(bus, native_dir, namespace="__Custom")
        assert bridge.load_module("plugin_x.native.py", "p") == "__Custom.p"
