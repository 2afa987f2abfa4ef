"""Interception registry — named actions mapped to ordered interceptor sets.

Dispatch semantics
------------------
* Interceptors fire in subscribe order.
* The set is snapshotted before firing; interceptors added during a dispatch
  wait for the next one, interceptors removed during a dispatch are skipped
  if not yet reached.  No existing interceptor is skipped or fired twice.
* A synchronous return of exactly ``True`` cancels the action.  Any other
  value (including truthy ones) continues.
* A "once" interceptor fires at most once: subscribing the same callback
  with ``once=True`` again after it fired, even from inside its own
  callback, is a no-op until its source is unsubscribed.
* Exceptions are logged with the action name and owning source and do not
  stop the remaining interceptors.
* Awaitable results are never waited on; their failures are logged when
  they complete.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from hostbridge.core.unloads import UnloadHandle
from hostbridge.models.actions import DispatchResult

logger = logging.getLogger(__name__)

InterceptCallback = Callable[..., Any]


class Interceptor:
    """One callback bound to one action name.

    Identity-hashed: the same callback subscribed twice yields two
    independent interceptors with independent unload handles.
    """

    __slots__ = ("action", "callback", "once", "source", "active")

    def __init__(
        self,
        action: str,
        callback: InterceptCallback,
        *,
        once: bool = False,
        source: str | None = None,
    ) -> None:
        self.action = action
        self.callback = callback
        self.once = once
        self.source = source
        self.active = True

    @property
    def label(self) -> str:
        return self.source or getattr(self.callback, "__qualname__", repr(self.callback))

    def __repr__(self) -> str:
        return (
            f"Interceptor(action={self.action!r}, source={self.source!r}, "
            f"once={self.once})"
        )


class InterceptionRegistry:
    """Maps action names to insertion-ordered sets of interceptors.

    Examples
    --------
    >>> registry = InterceptionRegistry()
    >>> unload = registry.subscribe("playback/PAUSE", lambda *args: True)
    >>> registry.dispatch("playback/PAUSE").cancelled
    True
    >>> unload()
    >>> "playback/PAUSE" in registry
    False
    """

    def __init__(self) -> None:
        # dict used as an ordered set
        self._interceptors: dict[str, dict[Interceptor, None]] = {}
        self._pending: set[asyncio.Future[Any]] = set()
        # (action, callback) -> source of once interceptors that already fired
        self._fired_once: dict[tuple[str, InterceptCallback], str | None] = {}

    # -- Subscription -------------------------------------------------------

    def subscribe(
        self,
        name: str,
        callback: InterceptCallback,
        once: bool = False,
        *,
        source: str | None = None,
    ) -> UnloadHandle:
        """Register *callback* for action *name*.

        Returns an unload handle that removes the interceptor; calling it
        more than once is a no-op.  With ``once=True`` the interceptor
        removes itself before its callback runs.
        """
        if once and (name, callback) in self._fired_once:
            logger.debug("Ignoring once re-subscribe of fired %s interceptor.", name)
            return UnloadHandle(lambda: None, source=source, name=f"intercept({name})")

        interceptor = Interceptor(name, callback, once=once, source=source)
        self._interceptors.setdefault(name, {})[interceptor] = None
        logger.debug("Subscribed %r", interceptor)

        def unintercept() -> None:
            self._remove(interceptor)

        return UnloadHandle(unintercept, source=source, name=f"intercept({name})")

    intercept = subscribe

    def unsubscribe_source(self, source: str) -> int:
        """Remove every interceptor owned by *source*.  Returns the count removed."""
        owned = [
            interceptor
            for bucket in self._interceptors.values()
            for interceptor in bucket
            if interceptor.source == source
        ]
        self._fired_once = {
            key: owner for key, owner in self._fired_once.items() if owner != source
        }
        for interceptor in owned:
            self._remove(interceptor)
        if owned:
            logger.info("Removed %d interceptor(s) owned by '%s'.", len(owned), source)
        return len(owned)

    def _remove(self, interceptor: Interceptor) -> None:
        interceptor.active = False
        bucket = self._interceptors.get(interceptor.action)
        if bucket is None or interceptor not in bucket:
            return
        del bucket[interceptor]
        if not bucket:
            del self._interceptors[interceptor.action]
        logger.debug("Unsubscribed %r", interceptor)

    # -- Lookup -------------------------------------------------------------

    def __contains__(self, name: object) -> bool:
        return name in self._interceptors

    def count(self, name: str) -> int:
        return len(self._interceptors.get(name, ()))

    def names(self) -> list[str]:
        return list(self._interceptors)

    def interceptors(self, name: str) -> list[Interceptor]:
        return list(self._interceptors.get(name, ()))

    # -- Dispatch -----------------------------------------------------------

    def dispatch(self, name: str, *args: Any) -> DispatchResult:
        """Fire every interceptor registered for *name* with *args*.

        Never raises on behalf of an interceptor.
        """
        bucket = self._interceptors.get(name)
        if not bucket:
            return DispatchResult(action=name)

        cancelled = False
        invoked = 0
        errors = 0
        for interceptor in list(bucket):
            # removed mid-dispatch (or a once interceptor already fired re-entrantly)
            if not interceptor.active:
                continue
            if interceptor.once:
                self._remove(interceptor)
                self._fired_once[(name, interceptor.callback)] = interceptor.source
            invoked += 1
            try:
                result = interceptor.callback(*args)
            except Exception:
                errors += 1
                logger.exception(
                    "Error in %s interceptor (source=%s)", name, interceptor.label
                )
                continue

            if result is True:
                cancelled = True
            elif inspect.isawaitable(result):
                self._watch(name, interceptor, result)

        if cancelled:
            logger.debug("Action %s cancelled by interceptor.", name)
        return DispatchResult(
            action=name, invoked=invoked, errors=errors, cancelled=cancelled
        )

    def _watch(self, name: str, interceptor: Interceptor, awaitable: Any) -> None:
        """Log the eventual failure of an interceptor's pending result."""
        if isinstance(awaitable, asyncio.Future):
            future: asyncio.Future[Any] = awaitable
        else:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                if inspect.iscoroutine(awaitable):
                    awaitable.close()
                logger.warning(
                    "%s interceptor (source=%s) returned an awaitable outside an "
                    "event loop; it was not run.",
                    name,
                    interceptor.label,
                )
                return
            future = asyncio.ensure_future(awaitable, loop=loop)

        self._pending.add(future)

        def _done(fut: asyncio.Future[Any]) -> None:
            self._pending.discard(fut)
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                logger.error(
                    "Error in %s interceptor (source=%s)",
                    name,
                    interceptor.label,
                    exc_info=exc,
                )

        future.add_done_callback(_done)
