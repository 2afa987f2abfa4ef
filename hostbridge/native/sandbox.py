"""Restricted module loading for approved native code payloads.

A payload runs in its own namespace whose ``__import__`` is a
``RestrictedImporter``:

* bare names resolve only if their top-level package is on the allow-list
  and not on the block-list (the block-list always wins);
* relative imports (``from .util import x``, ``require("./util")``) resolve
  against the importing module's own virtual path, falling back to a
  virtual directory stack that mirrors the payload's own module graph.
  Sources are fetched on demand through an injected ``fetch`` callable, never
  read from local disk, so a payload cannot traverse the filesystem
  through its imports;
* anything else is an ``ImportError``.
"""

from __future__ import annotations

import builtins
import functools
import importlib
import logging
import posixpath
import types
from collections.abc import Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

Fetch = Callable[[str], str]


def _no_fetch(path: str) -> str:
    raise ImportError(f"No module source available for relative import '{path}'")


class RestrictedImporter:
    """Drop-in ``__import__`` enforcing the allow-list and virtual directory stack.

    Parameters
    ----------
    allowed:
        Top-level module names resolvable by bare name.
    blocked:
        Top-level module names never resolvable.
    fetch:
        Returns the source text for a virtual path such as ``/plugin/util.py``.
    origin:
        Virtual path of the payload itself; relative imports start from its
        directory.
    """

    def __init__(
        self,
        *,
        allowed: Iterable[str],
        blocked: Iterable[str] = (),
        fetch: Fetch | None = None,
        origin: str = "/payload.py",
    ) -> None:
        self._allowed = frozenset(allowed)
        self._blocked = frozenset(blocked)
        self._fetch = fetch or _no_fetch
        self._origin = origin
        self._dir_stack: list[str] = [posixpath.dirname(origin) or "/"]
        self._cache: dict[str, types.ModuleType] = {}
        self._builtins = dict(vars(builtins))
        self._builtins["__import__"] = self

    @property
    def current_dir(self) -> str:
        return self._dir_stack[-1]

    @property
    def loaded(self) -> list[str]:
        return list(self._cache)

    def namespace(
        self, name: str = "__native__", base: str | None = None
    ) -> dict[str, Any]:
        """Fresh globals for a module executed under this importer.

        With *base*, the module's ``require`` resolves relative specs against
        that directory instead of the current top of the directory stack.
        """
        require = self.require if base is None else functools.partial(self._require_from, base)
        return {
            "__name__": name,
            "__builtins__": self._builtins,
            "require": require,
        }

    # -- __import__ protocol ------------------------------------------------

    def __call__(
        self,
        name: str,
        globals: dict[str, Any] | None = None,
        locals: dict[str, Any] | None = None,
        fromlist: tuple[str, ...] | list[str] | None = (),
        level: int = 0,
    ) -> types.ModuleType:
        if level > 0:
            return self._import_relative(name, fromlist or (), level, globals)
        self._check_allowed(name)
        return importlib.__import__(name, globals, locals, fromlist or (), 0)

    def require(self, spec: str) -> types.ModuleType:
        """Resolve ``./x`` / ``../x`` relative specs or allow-listed bare names."""
        return self._require_from(self.current_dir, spec)

    def _require_from(self, base: str, spec: str) -> types.ModuleType:
        if spec.startswith(("./", "../")):
            return self._load_virtual(self._resolve(spec, base))
        self._check_allowed(spec)
        return importlib.import_module(spec)

    # -- Internals ----------------------------------------------------------

    def _check_allowed(self, name: str) -> None:
        root = name.partition(".")[0]
        if root in self._blocked:
            logger.warning("Blocked native import of '%s'.", name)
            raise ImportError(f"Import of '{name}' is blocked")
        if root not in self._allowed:
            logger.warning("Rejected native import of '%s' (not allow-listed).", name)
            raise ImportError(f"Import of '{name}' is not allowed")

    def _resolve(self, spec: str, base: str) -> str:
        path = posixpath.normpath(posixpath.join(base, spec))
        if not path.endswith(".py"):
            path += ".py"
        return path

    def _module_dir(self, globals: dict[str, Any] | None) -> str:
        # a virtual module imports relative to its own path, even from a
        # function called after its load finished
        path = (globals or {}).get("__file__")
        if isinstance(path, str) and (path in self._cache or path == self._origin):
            return posixpath.dirname(path) or "/"
        return self.current_dir

    def _package_dir(self, level: int, globals: dict[str, Any] | None) -> str:
        directory = self._module_dir(globals)
        for _ in range(level - 1):
            directory = posixpath.dirname(directory) or "/"
        return directory

    def _import_relative(
        self,
        name: str,
        fromlist: Iterable[str],
        level: int,
        globals: dict[str, Any] | None,
    ) -> types.ModuleType:
        base = self._package_dir(level, globals)
        if name:
            path = posixpath.join(base, *name.split(".")) + ".py"
            return self._load_virtual(path)

        # ``from . import a, b``: each name is a sibling module
        package = types.ModuleType(base)
        package.__path__ = [base]  # type: ignore[attr-defined]
        for item in fromlist:
            setattr(package, item, self._load_virtual(posixpath.join(base, f"{item}.py")))
        return package

    def _load_virtual(self, path: str) -> types.ModuleType:
        cached = self._cache.get(path)
        if cached is not None:
            return cached
        try:
            source = self._fetch(path)
        except ImportError:
            raise
        except Exception as exc:
            raise ImportError(f"Failed to fetch '{path}': {exc}") from exc

        module = types.ModuleType(path)
        module.__file__ = path
        module.__dict__.update(self.namespace(path, posixpath.dirname(path) or "/"))
        # cached before exec so import cycles see the partial module
        self._cache[path] = module
        self._dir_stack.append(posixpath.dirname(path) or "/")
        try:
            exec(compile(source, path, "exec"), module.__dict__)
        except BaseException:
            del self._cache[path]
            raise
        finally:
            self._dir_stack.pop()
        logger.debug("Loaded virtual module %s", path)
        return module


class NativeSandbox:
    """Executes native payloads under a fresh ``RestrictedImporter`` each time.

    Parameters
    ----------
    allowed, blocked:
        Import policy shared by every payload.
    fetch:
        Source fetcher for relative imports.
    """

    def __init__(
        self,
        *,
        allowed: Iterable[str],
        blocked: Iterable[str] = (),
        fetch: Fetch | None = None,
    ) -> None:
        self._allowed = tuple(allowed)
        self._blocked = tuple(blocked)
        self._fetch = fetch

    def importer(self, origin: str = "/payload.py") -> RestrictedImporter:
        return RestrictedImporter(
            allowed=self._allowed,
            blocked=self._blocked,
            fetch=self._fetch,
            origin=origin,
        )

    def execute(
        self, code: str, *, label: str, origin: str = "/payload.py"
    ) -> dict[str, Any]:
        """Run *code* in an isolated namespace and return that namespace.

        Exceptions raised by the payload propagate unchanged.
        """
        importer = self.importer(origin)
        namespace = importer.namespace(base=importer.current_dir)
        namespace["__file__"] = origin
        exec(compile(code, f"<native:{label}>", "exec"), namespace)
        logger.info("Executed native code from %s", label)
        return namespace
