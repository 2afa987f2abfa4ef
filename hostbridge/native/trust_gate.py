r"""Trust gate — decides whether a native code payload may run.

State machine
-------------
::

    IDLE -> HASH_COMPUTED -> TRUSTED ------------> APPROVED -> TERMINAL
                          \-> AWAITING_DECISION -/         \
                                                \-> REJECTED -> TERMINAL

* The payload is hashed (SHA-256 over its text).
* A hash in the trust store is approved without prompting.
* Otherwise ``requestTrust(plugin_label, hash, timestamp)`` is sent to the
  restricted side and a one-shot listener waits on
  ``trustResponse:<hash>:<timestamp>`` for a ``TrustDecision`` code.
* The wait races a timer (default 60 s).  On timeout the listener is torn
  down, so a late response cannot resurrect the request, and the request is
  rejected.  The gate fails closed.
* ``ALLOW_ALWAYS`` persists the hash before approving.

Concurrent requests for the same hash share one pending decision, so the
user sees one prompt.  Rejections can optionally be remembered for the
session (``rejection_ttl``); they are never persisted.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any

from hostbridge.bridge.ipc import IpcBus
from hostbridge.core.hasher import payload_hash
from hostbridge.errors import (
    InvalidTrustTransition,
    NativeExecutionBlocked,
    NativeExecutionError,
)
from hostbridge.models.trust import (
    VALID_TRANSITIONS,
    TrustDecision,
    TrustOutcome,
    TrustRequest,
    TrustState,
)
from hostbridge.native.sandbox import NativeSandbox
from hostbridge.native.trust_store import TrustStore

logger = logging.getLogger(__name__)

REQUEST_TRUST_CHANNEL = "requestTrust"
DEFAULT_TRUST_TIMEOUT: float = 60.0
DEFAULT_PLUGIN_LABEL = "Unknown Plugin"


class _Run:
    """Transition bookkeeping for one request."""

    def __init__(self, code_hash: str, plugin_label: str) -> None:
        self.code_hash = code_hash
        self.plugin_label = plugin_label
        self.state = TrustState.IDLE
        self.history: list[TrustState] = [TrustState.IDLE]

    def transition(self, target: TrustState) -> None:
        allowed = VALID_TRANSITIONS.get(self.state, set())
        if target not in allowed:
            raise InvalidTrustTransition(
                f"Cannot transition trust request from {self.state.value} to "
                f"{target.value}. Allowed: {[s.value for s in allowed]}"
            )
        logger.debug(
            "Trust %s (%s): %s -> %s",
            self.code_hash[:12],
            self.plugin_label,
            self.state.value,
            target.value,
        )
        self.state = target
        self.history.append(target)


class TrustGate:
    """Hash lookup, user decision round trip and gated execution.

    Parameters
    ----------
    store:
        Persisted set of always-allowed hashes.
    bus:
        IPC bus used to prompt the restricted side and receive its answer.
    sandbox:
        Executes approved payloads.  Required only for ``register_native``.
    timeout:
        Seconds to wait for a decision before auto-blocking.
    rejection_ttl:
        Seconds a rejection is remembered for the session.  ``0`` disables it.
    clock:
        Wall-clock source in seconds; the request timestamp is its value in ms.
    """

    def __init__(
        self,
        store: TrustStore,
        bus: IpcBus,
        *,
        sandbox: NativeSandbox | None = None,
        timeout: float = DEFAULT_TRUST_TIMEOUT,
        rejection_ttl: float = 0.0,
        clock: Callable[[], float] = time.time,
        request_channel: str = REQUEST_TRUST_CHANNEL,
    ) -> None:
        self._store = store
        self._bus = bus
        self._sandbox = sandbox
        self._timeout = timeout
        self._rejection_ttl = rejection_ttl
        self._clock = clock
        self._request_channel = request_channel
        self._pending: dict[str, asyncio.Future[TrustOutcome]] = {}
        self._rejections: dict[str, float] = {}  # hash -> monotonic expiry

    @property
    def pending_hashes(self) -> list[str]:
        return list(self._pending)

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    async def request(
        self, code: str, plugin_label: str = DEFAULT_PLUGIN_LABEL
    ) -> TrustOutcome:
        """Run *code* through the gate and return its terminal outcome.

        Never raises for a rejection; see ``register_native`` for that.
        """
        code_hash = payload_hash(code)
        run = _Run(code_hash, plugin_label)
        run.transition(TrustState.HASH_COMPUTED)

        if code_hash in self._store:
            run.transition(TrustState.TRUSTED)
            run.transition(TrustState.APPROVED)
            run.transition(TrustState.TERMINAL)
            logger.info("Native code from %s is trusted (%s).", plugin_label, code_hash[:12])
            return TrustOutcome(
                hash=code_hash,
                plugin_label=plugin_label,
                approved=True,
                history=run.history,
            )

        if self._recently_rejected(code_hash):
            run.transition(TrustState.REJECTED)
            run.transition(TrustState.TERMINAL)
            logger.info(
                "Native code from %s was rejected earlier this session (%s).",
                plugin_label,
                code_hash[:12],
            )
            return TrustOutcome(
                hash=code_hash,
                plugin_label=plugin_label,
                approved=False,
                decision=TrustDecision.BLOCK,
                history=run.history,
            )

        pending = self._pending.get(code_hash)
        if pending is not None:
            logger.info(
                "Trust decision for %s already pending, joining it (%s).",
                code_hash[:12],
                plugin_label,
            )
            return await asyncio.shield(pending)

        future: asyncio.Future[TrustOutcome] = asyncio.get_running_loop().create_future()
        self._pending[code_hash] = future
        try:
            outcome = await self._await_decision(run)
        except BaseException as exc:
            if isinstance(exc, Exception):
                future.set_exception(exc)
                future.exception()  # retrieved here; joiners re-raise it
            else:
                future.cancel()
            raise
        finally:
            self._pending.pop(code_hash, None)
        future.set_result(outcome)
        return outcome

    async def _await_decision(self, run: _Run) -> TrustOutcome:
        request = TrustRequest(
            plugin_label=run.plugin_label,
            hash=run.code_hash,
            timestamp=int(self._clock() * 1000),
        )
        response: asyncio.Future[Any] = asyncio.get_running_loop().create_future()

        def on_response(code: Any = None, *_: Any) -> None:
            if not response.done():
                response.set_result(code)

        self._bus.once(request.response_channel, on_response)
        run.transition(TrustState.AWAITING_DECISION)
        delivered = self._bus.send(
            self._request_channel, request.plugin_label, request.hash, request.timestamp
        )
        if delivered == 0:
            logger.warning(
                "No listener on '%s'; trust request for %s will time out.",
                self._request_channel,
                run.plugin_label,
            )

        timed_out = False
        try:
            raw = await asyncio.wait_for(response, self._timeout)
        except asyncio.TimeoutError:
            timed_out = True
            raw = TrustDecision.BLOCK
            logger.warning(
                "No trust decision for %s within %ss, blocking.",
                run.plugin_label,
                self._timeout,
            )
        finally:
            self._bus.remove_all_listeners(request.response_channel)

        decision = _coerce_decision(raw)
        if decision is TrustDecision.BLOCK:
            run.transition(TrustState.REJECTED)
            if self._rejection_ttl > 0:
                self._rejections[run.code_hash] = time.monotonic() + self._rejection_ttl
        else:
            if decision is TrustDecision.ALLOW_ALWAYS:
                self._store.add(run.code_hash)
            run.transition(TrustState.APPROVED)
        run.transition(TrustState.TERMINAL)

        logger.info(
            "Trust decision for %s (%s): %s",
            run.plugin_label,
            run.code_hash[:12],
            decision.name,
        )
        return TrustOutcome(
            hash=run.code_hash,
            plugin_label=run.plugin_label,
            approved=decision is not TrustDecision.BLOCK,
            decision=decision,
            prompted=True,
            timed_out=timed_out,
            history=run.history,
        )

    def _recently_rejected(self, code_hash: str) -> bool:
        expiry = self._rejections.get(code_hash)
        if expiry is None:
            return False
        if time.monotonic() >= expiry:
            del self._rejections[code_hash]
            return False
        return True

    def forget_rejections(self) -> None:
        self._rejections.clear()

    # ------------------------------------------------------------------
    # Gated execution
    # ------------------------------------------------------------------

    async def register_native(
        self, code: str, plugin_label: str = DEFAULT_PLUGIN_LABEL
    ) -> None:
        """Gate *code* and execute it in the sandbox on approval.

        Raises
        ------
        NativeExecutionBlocked
            If the decision was Block or the decision window elapsed.
        NativeExecutionError
            If the approved payload raised while executing.
        """
        outcome = await self.request(code, plugin_label)
        if not outcome.approved:
            raise NativeExecutionBlocked(
                plugin_label, outcome.hash, timed_out=outcome.timed_out
            )
        if self._sandbox is None:
            raise NativeExecutionError(plugin_label, RuntimeError("no sandbox configured"))

        try:
            self._sandbox.execute(code, label=plugin_label)
        except Exception as exc:
            logger.exception("Failed to execute native code from %s", plugin_label)
            raise NativeExecutionError(plugin_label, exc) from exc


def _coerce_decision(raw: Any) -> TrustDecision:
    """Map a raw response code to a decision; anything unknown blocks."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        try:
            return TrustDecision(raw)
        except ValueError:
            pass
    logger.warning("Unknown trust response %r, blocking.", raw)
    return TrustDecision.BLOCK
