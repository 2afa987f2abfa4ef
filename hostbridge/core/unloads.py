"""Unload coordination — teardown callbacks owned by one extension.

Every reversible registration an extension makes (an interceptor, a module
channel, a listener) hands back an ``UnloadHandle``.  The extension keeps its
handles in an ``UnloadSet``; on unload, ``unload_all`` drains that set.

``unload_all`` guarantees:

* the set is snapshotted and cleared *before* any handle runs, so a handle
  is never invoked twice even if unloading re-enters registration code;
* handles run concurrently, each bounded by its own timeout;
* a slow or failing handle is logged and never blocks or fails the others;
* the coordinator itself never raises.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable, Iterator
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_UNLOAD_TIMEOUT: float = 5.0


class UnloadHandle:
    """A no-argument teardown callable tagged with diagnostic labels.

    Parameters
    ----------
    fn:
        The teardown to run.  May return an awaitable.
    source:
        The owning extension / source, used in log messages.
    name:
        What is being torn down.  Defaults to ``fn.__name__``.
    """

    __slots__ = ("_fn", "source", "name")

    def __init__(
        self,
        fn: Callable[[], Any],
        *,
        source: str | None = None,
        name: str | None = None,
    ) -> None:
        self._fn = fn
        self.source = source
        self.name = name or getattr(fn, "__name__", "unload")

    def __call__(self) -> Any:
        return self._fn()

    @property
    def label(self) -> str:
        return f"{self.source or ''}.{self.name}"

    def __repr__(self) -> str:
        return f"UnloadHandle(source={self.source!r}, name={self.name!r})"


def unloader(
    fn: Callable[[], Any], *, source: str | None = None, name: str | None = None
) -> UnloadHandle:
    """Tag *fn* as an unload handle.  Existing handles are returned as-is."""
    if isinstance(fn, UnloadHandle):
        if source is not None and fn.source is None:
            fn.source = source
        return fn
    return UnloadHandle(fn, source=source, name=name)


class UnloadSet:
    """Insertion-ordered set of unload handles owned by one extension."""

    def __init__(self, handles: Iterable[Callable[[], Any]] = ()) -> None:
        self._handles: dict[Callable[[], Any], None] = {}
        for handle in handles:
            self.add(handle)

    def add(self, handle: Callable[[], Any]) -> Callable[[], Any]:
        self._handles[handle] = None
        return handle

    def discard(self, handle: Callable[[], Any]) -> None:
        self._handles.pop(handle, None)

    def clear(self) -> None:
        self._handles.clear()

    def __contains__(self, handle: object) -> bool:
        return handle in self._handles

    def __iter__(self) -> Iterator[Callable[[], Any]]:
        return iter(list(self._handles))

    def __len__(self) -> int:
        return len(self._handles)

    def __repr__(self) -> str:
        return f"UnloadSet(size={len(self._handles)})"


def _describe(handle: Callable[[], Any]) -> str:
    source = getattr(handle, "source", None) or ""
    name = getattr(handle, "name", None) or getattr(handle, "__name__", repr(handle))
    return f"{source}.{name}"


async def _run_handle(handle: Callable[[], Any], timeout: float) -> None:
    try:
        result = handle()
        if inspect.isawaitable(result):
            # shield: a timed-out teardown keeps running orphaned, we just stop waiting
            await asyncio.wait_for(asyncio.shield(asyncio.ensure_future(result)), timeout)
    except asyncio.TimeoutError:
        logger.error(
            "Error unloading %s: took longer than %ss to run", _describe(handle), timeout
        )
    except Exception:
        logger.exception("Error unloading %s", _describe(handle))


async def unload_all(
    unloads: UnloadSet | set[Callable[[], Any]] | None,
    *,
    timeout: float = DEFAULT_UNLOAD_TIMEOUT,
) -> None:
    """Run and clear every handle in *unloads*.

    Completes within roughly *timeout* seconds regardless of how many
    handles never finish.
    """
    if unloads is None or len(unloads) == 0:
        return
    to_unload = list(unloads)
    unloads.clear()

    logger.debug("Unloading %d handle(s).", len(to_unload))
    await asyncio.gather(*(_run_handle(handle, timeout) for handle in to_unload))
