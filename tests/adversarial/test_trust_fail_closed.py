"""Adversarial tests — the trust gate fails closed.

These tests verify that:
1. Silence, malformed answers and late answers never approve a payload
2. A response for one prompt cannot approve another
3. Blocked payloads never execute
4. Only "always allow" ever persists a hash
"""

from __future__ import annotations

import asyncio

import pytest

from hostbridge.bridge.ipc import IpcBus
from hostbridge.core.hasher import payload_hash
from hostbridge.errors import NativeExecutionBlocked
from hostbridge.models.trust import TrustDecision
from hostbridge.native.sandbox import NativeSandbox
from hostbridge.native.trust_gate import TrustGate
from hostbridge.native.trust_store import TrustStore


class RecordingSandbox(NativeSandbox):
    def __init__(self) -> None:
        super().__init__(allowed=[])
        self.executed: list[str] = []

    def execute(self, code, *, label, origin="/payload.py"):
        self.executed.append(label)
        return super().execute(code, label=label, origin=origin)


class TestFailClosed:
    def test_late_answer_after_timeout_is_dropped(self, trust_store: TrustStore, bus: IpcBus):
        prompts = []
        bus.on("requestTrust", lambda *args: prompts.append(args))
        gate = TrustGate(trust_store, bus, timeout=0.05)

        outcome = asyncio.run(gate.request("payload()"))
        assert outcome.approved is False

        _, code_hash, timestamp = prompts[0]
        bus.send(f"trustResponse:{code_hash}:{timestamp}", TrustDecision.ALLOW_ALWAYS)
        assert code_hash not in trust_store

    def test_forged_channel_cannot_approve(self, trust_store: TrustStore, bus: IpcBus):
        gate = TrustGate(trust_store, bus, timeout=0.1)

        def forge(plugin_label, code_hash, timestamp):
            # answers a channel for another hash and a stale timestamp
            bus.send(f"trustResponse:{payload_hash('other')}:{timestamp}", 2)
            bus.send(f"trustResponse:{code_hash}:{timestamp - 1}", 2)

        bus.on("requestTrust", forge)
        outcome = asyncio.run(gate.request("payload()"))
        assert outcome.approved is False
        assert outcome.timed_out is True
        assert len(trust_store) == 0

    @pytest.mark.parametrize("raw", [3, 1.0, "ALLOW_ALWAYS", b"\x02", [2], {"code": 2}])
    def test_malformed_answers_block(self, trust_store: TrustStore, bus: IpcBus, raw):
        def reply(plugin_label, code_hash, timestamp):
            bus.send(f"trustResponse:{code_hash}:{timestamp}", raw)

        bus.on("requestTrust", reply)
        outcome = asyncio.run(TrustGate(trust_store, bus, timeout=1.0).request("payload()"))
        assert outcome.approved is False
        assert len(trust_store) == 0

    def test_blocked_payload_has_no_side_effects(
        self, trust_store: TrustStore, bus: IpcBus, trust_responder
    ):
        trust_responder(bus, TrustDecision.BLOCK)
        sandbox = RecordingSandbox()
        gate = TrustGate(trust_store, bus, sandbox=sandbox, timeout=1.0)
        with pytest.raises(NativeExecutionBlocked):
            asyncio.run(gate.register_native("x = 1\n", "Plugin X"))
        assert sandbox.executed == []

    def test_allow_once_never_persists(self, trust_store: TrustStore, bus: IpcBus, trust_responder):
        trust_responder(bus, TrustDecision.ALLOW_ONCE)
        gate = TrustGate(trust_store, bus, timeout=1.0)
        asyncio.run(gate.request("payload()"))
        assert TrustStore(trust_store.path).hashes() == frozenset()

    def test_edited_payload_prompts_again(self, trust_store: TrustStore, bus: IpcBus, trust_responder):
        listener = trust_responder(bus, TrustDecision.ALLOW_ALWAYS)
        gate = TrustGate(trust_store, bus, timeout=1.0)
        asyncio.run(gate.request("payload()"))
        asyncio.run(gate.request("payload() "))
        assert len(listener.prompts) == 2
