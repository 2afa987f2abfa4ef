"""In-process IPC bus — invoke/handle and send/on channels.

Bridge boundary
---------------
The privileged context registers *handlers* (``handle``) that the restricted
context calls with ``invoke`` and awaits.  Either side may ``send``
one-way notifications to *listeners* registered with ``on`` / ``once``.

Handler semantics follow a "safe handle": registering a handler for a
channel that already has one replaces it, never duplicates it.  Listener
failures are logged and never reach the sender.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from hostbridge.core.unloads import UnloadHandle
from hostbridge.errors import IpcError

logger = logging.getLogger(__name__)

Handler = Callable[..., Any]
Listener = Callable[..., Any]


class _Registration:
    __slots__ = ("listener", "once")

    def __init__(self, listener: Listener, once: bool) -> None:
        self.listener = listener
        self.once = once


class IpcBus:
    """Unified invoke/send interface between the two contexts.

    Parameters
    ----------
    name:
        Label used in log messages.

    Examples
    --------
    >>> bus = IpcBus()
    >>> unload = bus.on("ping", lambda *args: print("got", *args))
    >>> bus.send("ping", 1)
    got 1
    1
    """

    def __init__(self, name: str = "ipc") -> None:
        self._name = name
        self._handlers: dict[str, Handler] = {}
        self._listeners: dict[str, list[_Registration]] = {}
        self._pending: set[asyncio.Future[Any]] = set()

    # ------------------------------------------------------------------
    # invoke / handle
    # ------------------------------------------------------------------

    def handle(self, channel: str, handler: Handler) -> UnloadHandle:
        """Register *handler* for *channel*, replacing any existing handler."""
        if channel in self._handlers:
            logger.debug("%s: replacing handler for '%s'.", self._name, channel)
        self._handlers[channel] = handler

        def remove_handle() -> None:
            if self._handlers.get(channel) is handler:
                del self._handlers[channel]

        return UnloadHandle(remove_handle, name=f"handle({channel})")

    def remove_handler(self, channel: str) -> bool:
        return self._handlers.pop(channel, None) is not None

    def has_handler(self, channel: str) -> bool:
        return channel in self._handlers

    async def invoke(self, channel: str, *args: Any) -> Any:
        """Call the handler for *channel* and await its result.

        Raises
        ------
        IpcError
            If no handler is registered for *channel*.
        """
        handler = self._handlers.get(channel)
        if handler is None:
            raise IpcError(f"No handler registered for '{channel}'")
        result = handler(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    # ------------------------------------------------------------------
    # send / on
    # ------------------------------------------------------------------

    def on(self, channel: str, listener: Listener) -> UnloadHandle:
        return self._add_listener(channel, listener, once=False)

    def once(self, channel: str, listener: Listener) -> UnloadHandle:
        """Register a listener that is removed before its first delivery."""
        return self._add_listener(channel, listener, once=True)

    def _add_listener(self, channel: str, listener: Listener, *, once: bool) -> UnloadHandle:
        registration = _Registration(listener, once)
        self._listeners.setdefault(channel, []).append(registration)

        def remove_listener() -> None:
            self._discard(channel, registration)

        return UnloadHandle(remove_listener, name=f"on({channel})")

    def _discard(self, channel: str, registration: _Registration) -> None:
        registrations = self._listeners.get(channel)
        if registrations is None or registration not in registrations:
            return
        registrations.remove(registration)
        if not registrations:
            del self._listeners[channel]

    def remove_listener(self, channel: str, listener: Listener) -> None:
        for registration in list(self._listeners.get(channel, ())):
            if registration.listener is listener:
                self._discard(channel, registration)

    def remove_all_listeners(self, channel: str) -> None:
        self._listeners.pop(channel, None)

    def listener_count(self, channel: str) -> int:
        return len(self._listeners.get(channel, ()))

    def send(self, channel: str, *args: Any) -> int:
        """Deliver a notification to every listener on *channel*.

        Returns the number of listeners that received it.
        """
        registrations = list(self._listeners.get(channel, ()))
        delivered = 0
        for registration in registrations:
            if registration.once:
                if registration not in self._listeners.get(channel, ()):
                    continue
                self._discard(channel, registration)
            delivered += 1
            try:
                result = registration.listener(*args)
            except Exception:
                logger.exception("%s: listener on '%s' failed.", self._name, channel)
                continue
            if inspect.isawaitable(result):
                self._schedule(channel, result)
        return delivered

    def _schedule(self, channel: str, awaitable: Any) -> None:
        try:
            future = asyncio.ensure_future(awaitable, loop=asyncio.get_running_loop())
        except RuntimeError:
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            logger.warning(
                "%s: async listener on '%s' ignored outside an event loop.",
                self._name,
                channel,
            )
            return
        self._pending.add(future)

        def _done(fut: asyncio.Future[Any]) -> None:
            self._pending.discard(fut)
            if not fut.cancelled() and fut.exception() is not None:
                logger.error(
                    "%s: listener on '%s' failed.",
                    self._name,
                    channel,
                    exc_info=fut.exception(),
                )

        future.add_done_callback(_done)

    def __repr__(self) -> str:
        return (
            f"IpcBus(name={self._name!r}, handlers={len(self._handlers)}, "
            f"channels={len(self._listeners)})"
        )
