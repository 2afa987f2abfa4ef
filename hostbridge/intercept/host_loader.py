"""Host module loader — locate, patch and execute host module source.

For every host module the loader:

1. runs each configured anchor through the pattern-locator;
2. exports the located store getter as ``hijacked_get_store``;
3. renames the located action factory and rebinds it through
   ``ActionFactoryPatch`` so every built action dispatches through the
   interception registry;
4. executes the rewritten source into a fresh module and caches it.

Anchor misses and declarations that cannot be patched are logged as
"feature unavailable".  If the rewritten source does not compile, the
original source is executed instead, so a host module always loads.
"""

from __future__ import annotations

import logging
import types
from collections.abc import Callable, Iterable
from typing import Any

from hostbridge.intercept.locator import locate_all
from hostbridge.intercept.patcher import (
    PATCH_ACTION_GLOBAL,
    PATCH_FACTORY_GLOBAL,
    ActionFactoryPatch,
    patch_action,
    patch_source,
)
from hostbridge.intercept.registry import InterceptionRegistry
from hostbridge.models.locator import Anchor, LocateMode

logger = logging.getLogger(__name__)

STORE_ANCHOR = Anchor(
    name="get_store",
    text='RuntimeError("No global store set")',
)

PREPARE_ACTION_ANCHOR = Anchor(
    name="prepare_action",
    text='"meta" in prepared',
    mode=LocateMode.ENCLOSING_DECLARATION,
    block_opener=":\n    def ",
)

DEFAULT_ANCHORS: tuple[Anchor, ...] = (STORE_ANCHOR, PREPARE_ACTION_ANCHOR)


class HostModuleLoader:
    """Transforms and executes host modules with interception patched in.

    Parameters
    ----------
    registry:
        Registry every patched action dispatches through.
    store_anchor, factory_anchor:
        Anchors for the store getter and the action-builder factory.
    action_anchors:
        Extra anchors for plain functions patched under their own name.
    """

    def __init__(
        self,
        registry: InterceptionRegistry,
        *,
        store_anchor: Anchor = STORE_ANCHOR,
        factory_anchor: Anchor = PREPARE_ACTION_ANCHOR,
        action_anchors: Iterable[Anchor] = (),
    ) -> None:
        self._registry = registry
        self._store_anchor = store_anchor
        self._factory_anchor = factory_anchor
        self._action_anchors = tuple(action_anchors)
        self.modules: dict[str, types.ModuleType] = {}
        self.build_actions: dict[str, Callable[..., Any]] = {}
        self.store: Any = None
        self.unavailable: set[str] = set()

    # -- Transform ----------------------------------------------------------

    def transform(self, code: str, path: str = "<host>") -> str:
        """Rewrite *code*; returns the input unchanged when nothing matches."""
        anchors = (self._store_anchor, self._factory_anchor, *self._action_anchors)
        matches = locate_all(code, anchors)
        for anchor in anchors:
            if anchor.name not in matches:
                self.unavailable.add(anchor.name)
                logger.warning(
                    "Anchor '%s' not found in %s; feature unavailable this session.",
                    anchor.name,
                    path,
                )

        # Patch from the highest offset down so earlier offsets stay valid.
        patches = sorted(
            (m for name, m in matches.items() if name != self._store_anchor.name),
            key=lambda m: m.offset,
            reverse=True,
        )
        for match in patches:
            try:
                code = patch_source(
                    code, match, factory=match.anchor == self._factory_anchor.name
                )
            except ValueError as exc:
                self.unavailable.add(match.anchor)
                logger.warning(
                    "Cannot patch '%s' in %s (%s); feature unavailable this session.",
                    match.anchor,
                    path,
                    exc,
                )
                continue
            self.unavailable.discard(match.anchor)
            logger.info("Patched %s (%s) in %s", match.name, match.anchor, path)

        store = matches.get(self._store_anchor.name)
        if store is not None:
            self.unavailable.discard(store.anchor)
            code += f"\nhijacked_get_store = {store.name}\n"
        return code

    # -- Load ---------------------------------------------------------------

    def load(self, path: str, code: str) -> types.ModuleType:
        """Transform, execute and cache the host module at *path*."""
        transformed = self.transform(code, path)
        try:
            compiled = compile(transformed, path, "exec")
        except SyntaxError:
            logger.warning(
                "Patched %s does not compile; feature unavailable this session, "
                "loading it unpatched.",
                path,
                exc_info=True,
            )
            names = (self._store_anchor, self._factory_anchor, *self._action_anchors)
            self.unavailable.update(anchor.name for anchor in names)
            compiled = compile(code, path, "exec")
        module = types.ModuleType(path)
        module.__file__ = path
        module.__dict__[PATCH_ACTION_GLOBAL] = lambda fn: patch_action(fn, self._registry)
        module.__dict__[PATCH_FACTORY_GLOBAL] = lambda fn: ActionFactoryPatch(
            fn, self._registry, self.build_actions
        )
        exec(compiled, module.__dict__)
        self.modules[path] = module

        getter = module.__dict__.get("hijacked_get_store")
        if getter is not None and self.store is None:
            try:
                self.store = getter()
                logger.info("Captured host store from %s", path)
            except Exception:
                logger.exception("Host store getter in %s failed", path)
        return module
