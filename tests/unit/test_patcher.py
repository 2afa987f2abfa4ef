"""Tests for the action patcher."""

from __future__ import annotations

import pytest

from hostbridge.intercept.locator import locate
from hostbridge.intercept.patcher import (
    UNPATCHED_PREFIX,
    ActionFactoryPatch,
    PatchedAction,
    patch_action,
    patch_source,
)
from hostbridge.intercept.registry import InterceptionRegistry
from hostbridge.models.actions import NOOP
from hostbridge.models.locator import Anchor, LocatorMatch


class TestPatchedAction:
    def test_calls_original_when_not_cancelled(self, registry: InterceptionRegistry):
        calls = []

        def set_volume(level):
            calls.append(level)
            return {"volume": level}

        patched = patch_action(set_volume, registry)
        seen = []
        registry.subscribe("set_volume", lambda level: seen.append(level))
        assert patched(7) == {"volume": 7}
        assert calls == [7]
        assert seen == [7]

    def test_cancel_returns_noop_and_skips_original(self, registry: InterceptionRegistry):
        original_calls = []
        patched = patch_action(lambda *args: original_calls.append(args), registry, "x")
        registry.subscribe("x", lambda *args: None)
        registry.subscribe("x", lambda *args: True)
        assert patched("payload") is NOOP
        assert original_calls == []

    def test_interceptor_error_does_not_cancel(self, registry: InterceptionRegistry):
        def broken(*args):
            raise RuntimeError("nope")

        patched = patch_action(lambda: "ran", registry, "x")
        registry.subscribe("x", broken)
        assert patched() == "ran"

    def test_inferred_name_strips_prefix(self, registry: InterceptionRegistry):
        def __hb_unpatched_seek():
            return None

        assert patch_action(__hb_unpatched_seek, registry).action_name == "seek"

    def test_repatching_unwraps(self, registry: InterceptionRegistry):
        def skip():
            return "skipped"

        once = patch_action(skip, registry)
        twice = patch_action(once, registry)
        assert isinstance(twice, PatchedAction)
        assert twice.original is skip


class TestActionFactoryPatch:
    def test_builders_patched_under_action_type(self, registry: InterceptionRegistry):
        def factory(action_type):
            return lambda payload=None: {"type": action_type, "payload": payload}

        patched_factory = ActionFactoryPatch(factory, registry)
        play = patched_factory("playback/PLAY")
        assert play("a") == {"type": "playback/PLAY", "payload": "a"}

        registry.subscribe("playback/PLAY", lambda payload: payload == "blocked")
        assert play("blocked") is NOOP
        assert "playback/PLAY" in patched_factory.build_actions

    def test_non_callable_passthrough(self, registry: InterceptionRegistry):
        patched_factory = ActionFactoryPatch(lambda action_type: 42, registry)
        assert patched_factory("x") == 42


class TestPatchSource:
    SOURCE = (
        "def skip(track):\n"
        "    return track + 1\n"
        "\n"
        "\n"
        "result = skip(1)\n"
    )

    def test_renames_and_rebinds_after_block(self):
        match = locate(self.SOURCE, Anchor(name="skip", text="return track + 1", marker="("))
        assert match is not None
        patched = patch_source(self.SOURCE, match)
        assert f"def {UNPATCHED_PREFIX}skip(track):" in patched
        rebind = f"skip = __hb_patch_action__({UNPATCHED_PREFIX}skip)\n"
        assert rebind in patched
        # the rebinding precedes module-level use
        assert patched.index(rebind) < patched.index("result = skip(1)")

    def test_patched_source_executes_through_registry(self, registry):
        match = locate(self.SOURCE, Anchor(name="skip", text="return track + 1", marker="("))
        patched = patch_source(self.SOURCE, match)
        namespace = {"__hb_patch_action__": lambda fn: patch_action(fn, registry)}
        registry.subscribe("skip", lambda track: True)
        exec(patched, namespace)
        assert namespace["result"] is NOOP

    def test_declaration_at_end_of_file(self):
        code = "def last():\n    return 1"
        match = LocatorMatch(anchor="a", name="last", offset=4, anchor_offset=12)
        patched = patch_source(code, match)
        assert patched.endswith(f"\nlast = __hb_patch_action__({UNPATCHED_PREFIX}last)\n")

    def test_bad_offset_rejected(self):
        match = LocatorMatch(anchor="a", name="skip", offset=0, anchor_offset=10)
        with pytest.raises(ValueError, match="does not point"):
            patch_source(self.SOURCE, match)


class TestPatchSourceBlocks:
    def _patch(self, code: str, text: str) -> str:
        match = locate(code, Anchor(name="skip", text=text, marker="("))
        assert match is not None
        return patch_source(code, match)

    def _run(self, code: str, registry: InterceptionRegistry) -> dict:
        namespace = {"__hb_patch_action__": lambda fn: patch_action(fn, registry)}
        exec(compile(code, "<host>", "exec"), namespace)
        return namespace

    def test_column_zero_comment_inside_body(self, registry):
        code = (
            "def skip(track):\n"
            "    value = track + 1\n"
            "# host comment at column 0\n"
            "    return value\n"
            "\n"
            "after = skip(1)\n"
        )
        namespace = self._run(self._patch(code, "value = track + 1"), registry)
        assert namespace["after"] == 2
        assert isinstance(namespace["skip"], PatchedAction)

    def test_dedented_string_lines_inside_body(self, registry):
        code = (
            "def skip(track):\n"
            "    note = '''first\n"
            "dedented line\n"
            "'''\n"
            "    return track + len(note)\n"
        )
        namespace = self._run(self._patch(code, "return track + len(note)"), registry)
        registry.subscribe("skip", lambda track: True)
        assert namespace["skip"](1) is NOOP

    def test_one_line_declaration(self, registry):
        code = (
            "def skip(track): return track + 1\n"
            "def other(flag):\n"
            "    if flag:\n"
            "        return 1\n"
            "    return 0\n"
        )
        patched = self._patch(code, "return track + 1")
        rebind = f"skip = __hb_patch_action__({UNPATCHED_PREFIX}skip)\n"
        assert patched.index(rebind) < patched.index("def other")
        namespace = self._run(patched, registry)
        assert namespace["skip"](1) == 2
        assert namespace["other"](True) == 1

    def test_non_function_match_rejected(self):
        code = "skip = (lambda track: track + 1)\n"
        match = LocatorMatch(anchor="a", name="skip", offset=0, anchor_offset=8)
        with pytest.raises(ValueError, match="No function declaration"):
            patch_source(code, match)

    def test_unparseable_source_rejected(self):
        code = "function skip(track) { return track + 1 }"
        match = LocatorMatch(anchor="a", name="skip", offset=9, anchor_offset=23)
        with pytest.raises(ValueError, match="does not parse"):
            patch_source(code, match)


class TestPatchedMethods:
    SOURCE = (
        "class Player:\n"
        "    def __init__(self):\n"
        "        self.offset = 10\n"
        "\n"
        "    def skip(self, track):\n"
        "        return track + self.offset  # SKIP_ANCHOR\n"
        "\n"
        "    def stop(self):\n"
        "        return 'stopped'\n"
    )

    def _load(self, registry: InterceptionRegistry) -> dict:
        match = locate(self.SOURCE, Anchor(name="skip", text="# SKIP_ANCHOR", marker="("))
        patched = patch_source(self.SOURCE, match)
        namespace = {"__hb_patch_action__": lambda fn: patch_action(fn, registry)}
        exec(compile(patched, "<host>", "exec"), namespace)
        return namespace

    def test_receiver_reaches_original(self, registry):
        player = self._load(registry)["Player"]()
        assert player.skip(1) == 11
        assert player.stop() == "stopped"

    def test_interceptors_see_call_arguments_only(self, registry):
        seen = []
        registry.subscribe("skip", lambda *args: seen.append(args))
        self._load(registry)["Player"]().skip(5)
        assert seen == [(5,)]

    def test_cancel_on_method(self, registry):
        registry.subscribe("skip", lambda track: True)
        assert self._load(registry)["Player"]().skip(1) is NOOP

    def test_class_access_returns_wrapper(self, registry):
        player_cls = self._load(registry)["Player"]
        assert isinstance(player_cls.skip, PatchedAction)
        assert player_cls.skip.action_name == "skip"

    def test_factory_method_binds_receiver(self, registry):
        class Host:
            prefix = "host/"

            def build(self, action_type):
                return lambda value: {"type": self.prefix + action_type, "payload": value}

        build_actions = {}
        Host.build = ActionFactoryPatch(Host.build, registry, build_actions)
        action = Host().build("PLAY")
        assert action(3) == {"type": "host/PLAY", "payload": 3}
        assert "PLAY" in build_actions
