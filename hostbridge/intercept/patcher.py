"""Action patcher — routes calls to located host functions through the registry.

Two stages, kept separate:

1. ``patch_source`` rewrites host source text given a successful
   ``LocatorMatch``: the declaration is renamed to ``__hb_unpatched_<name>``
   and ``<name>`` is rebound to a patched wrapper right after the
   declaration block.  Host modules are Python source; the block is found
   with ``ast`` so comments and dedented string lines inside it are safe.
2. ``PatchedAction`` is that wrapper at runtime: an explicit value holding
   the original callable, the registry and the action name.  It binds like
   a function, so a patched method still receives its instance.
"""

from __future__ import annotations

import ast
import functools
import logging
import types
from collections.abc import Callable
from typing import Any

from hostbridge.intercept.registry import InterceptionRegistry
from hostbridge.models.actions import NOOP
from hostbridge.models.locator import LocatorMatch

logger = logging.getLogger(__name__)

UNPATCHED_PREFIX = "__hb_unpatched_"
PATCH_ACTION_GLOBAL = "__hb_patch_action__"
PATCH_FACTORY_GLOBAL = "__hb_patch_factory__"

_UNBOUND = object()


class PatchedAction:
    """Callable wrapper that consults the registry before the original.

    On each call: dispatch ``action_name`` with the call arguments; if any
    interceptor returned exactly ``True`` return ``NOOP`` without calling the
    original, otherwise call the original and return its result.

    Accessed through an instance it returns a bound method: the receiver is
    passed to the original but not to the interceptors.
    """

    def __init__(
        self,
        original: Callable[..., Any],
        registry: InterceptionRegistry,
        action_name: str,
    ) -> None:
        self.original = original
        self.registry = registry
        self.action_name = action_name
        functools.update_wrapper(self, original)

    def __call__(self, *args: Any, **kwargs: Any) -> Any:
        return self._invoke(_UNBOUND, args, kwargs)

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return types.MethodType(self._call_bound, obj)

    def _call_bound(self, receiver: Any, *args: Any, **kwargs: Any) -> Any:
        return self._invoke(receiver, args, kwargs)

    def _invoke(self, receiver: Any, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        result = self.registry.dispatch(self.action_name, *args)
        if result.cancelled:
            return NOOP
        if receiver is _UNBOUND:
            return self.original(*args, **kwargs)
        return self.original(receiver, *args, **kwargs)

    def __repr__(self) -> str:
        return f"PatchedAction({self.action_name!r})"


def _inferred_name(original: Callable[..., Any]) -> str:
    name = getattr(original, "__name__", None) or repr(original)
    # also covers class-private mangling (_Cls__hb_unpatched_<name>)
    _, prefix, rest = name.partition(UNPATCHED_PREFIX)
    return rest if prefix and rest else name


def patch_action(
    original: Callable[..., Any],
    registry: InterceptionRegistry,
    action_name: str | None = None,
) -> PatchedAction:
    """Wrap *original*; the action name defaults to its inferred name."""
    if isinstance(original, PatchedAction):
        original = original.original
    name = action_name or _inferred_name(original)
    logger.debug("Patched action %s", name)
    return PatchedAction(original, registry, name)


class ActionFactoryPatch:
    """Wraps an action-builder factory ``factory(action_type, ...) -> builder``.

    Every builder the factory returns is patched under its ``action_type``
    and remembered in ``build_actions`` so extensions can fire actions
    directly.  The host may build the same type more than once; the latest
    builder wins.
    """

    def __init__(
        self,
        factory: Callable[..., Any],
        registry: InterceptionRegistry,
        build_actions: dict[str, Callable[..., Any]] | None = None,
    ) -> None:
        self.factory = factory
        self.registry = registry
        self.build_actions = build_actions if build_actions is not None else {}
        functools.update_wrapper(self, factory)

    def __call__(self, action_type: str, *args: Any, **kwargs: Any) -> Any:
        builder = self.factory(action_type, *args, **kwargs)
        if not callable(builder):
            return builder
        self.build_actions[action_type] = builder
        return PatchedAction(builder, self.registry, action_type)

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return ActionFactoryPatch(
            types.MethodType(self.factory, obj), self.registry, self.build_actions
        )


def _declaration_end(code: str, renamed: str, offset: int) -> tuple[int, str]:
    """End offset and indentation of the ``def`` named *renamed* at *offset*.

    Raises
    ------
    ValueError
        If *code* does not parse or holds no such function declaration.
    """
    try:
        tree = ast.parse(code)
    except SyntaxError as exc:
        raise ValueError(f"Host source does not parse: {exc}") from exc

    line = code.count("\n", 0, offset) + 1
    candidates = [
        node
        for node in ast.walk(tree)
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef))
        and node.name == renamed
        and node.lineno <= line
    ]
    if not candidates:
        raise ValueError(f"No function declaration '{renamed}' at line {line}")
    node = max(candidates, key=lambda n: n.lineno)

    lines = code.splitlines(keepends=True)
    def_line = lines[node.lineno - 1]
    indent = def_line[: len(def_line) - len(def_line.lstrip())]
    end = sum(len(text) for text in lines[: node.end_lineno])
    return end, indent


def patch_source(code: str, match: LocatorMatch, *, factory: bool = False) -> str:
    """Rewrite *code* so the declaration at ``match.offset`` is patched.

    The declaration is renamed and ``<name>`` is rebound to the patched
    wrapper directly after the declaration's block, so module-level code
    that runs later, and every call site, reaches the wrapper.

    Raises
    ------
    ValueError
        If the match does not point at a function declaration.
    """
    name = match.name
    if code[match.offset:match.offset + len(name)] != name:
        raise ValueError(
            f"Match for '{name}' does not point at its declaration (offset {match.offset})"
        )
    renamed = f"{UNPATCHED_PREFIX}{name}"
    code = code[:match.offset] + renamed + code[match.offset + len(name):]

    end, indent = _declaration_end(code, renamed, match.offset)
    patcher = PATCH_FACTORY_GLOBAL if factory else PATCH_ACTION_GLOBAL
    rebind = f"{indent}{name} = {patcher}({renamed})\n"
    if end > 0 and code[end - 1] != "\n":
        rebind = "\n" + rebind
    return code[:end] + rebind + code[end:]
