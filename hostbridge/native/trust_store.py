"""Trust store — persisted set of approved native code hashes.

The store is a JSON array of hex-encoded SHA-256 digests.  It is read once
at construction and rewritten in full whenever a hash is added or removed.
Hashes are only ever added by an explicit "always allow" decision.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Iterator
from pathlib import Path

logger = logging.getLogger(__name__)

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def is_valid_hash(value: object) -> bool:
    return isinstance(value, str) and _HEX_DIGEST.match(value) is not None


class TrustStore:
    """Set of trusted payload hashes, optionally backed by a JSON file.

    Parameters
    ----------
    path:
        JSON file to load from and persist to.  ``None`` keeps the store
        in memory only.

    Examples
    --------
    >>> store = TrustStore()
    >>> store.add("ab" * 32)
    True
    >>> "ab" * 32 in store
    True
    """

    def __init__(self, path: Path | None = None, hashes: Iterable[str] = ()) -> None:
        self._path = path
        self._hashes: set[str] = set()
        if path is not None:
            self.load()
        for value in hashes:
            self._hashes.add(value)

    @property
    def path(self) -> Path | None:
        return self._path

    # -- Set interface ------------------------------------------------------

    def __contains__(self, code_hash: object) -> bool:
        return code_hash in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._hashes))

    def hashes(self) -> frozenset[str]:
        return frozenset(self._hashes)

    # -- Mutation -----------------------------------------------------------

    def add(self, code_hash: str) -> bool:
        """Trust *code_hash* permanently.  Returns ``False`` if already trusted.

        Raises
        ------
        ValueError
            If *code_hash* is not a lowercase hex SHA-256 digest.
        """
        if not is_valid_hash(code_hash):
            raise ValueError(f"Not a SHA-256 hex digest: {code_hash!r}")
        if code_hash in self._hashes:
            return False
        self._hashes.add(code_hash)
        self.persist()
        logger.info("Trusted native code hash %s", code_hash)
        return True

    def remove(self, code_hash: str) -> bool:
        """Revoke trust in *code_hash*.  Returns ``False`` if it was not trusted."""
        if code_hash not in self._hashes:
            logger.warning("Cannot revoke %s: not in trust store.", code_hash)
            return False
        self._hashes.discard(code_hash)
        self.persist()
        logger.info("Revoked trust for native code hash %s", code_hash)
        return True

    # -- Persistence --------------------------------------------------------

    def to_json(self) -> str:
        return json.dumps(sorted(self._hashes), indent=2)

    @classmethod
    def from_json(cls, text: str, path: Path | None = None) -> TrustStore:
        """Build a store from a JSON array.  Invalid entries are dropped."""
        store = cls(path=None)
        store._path = path
        store._hashes = _parse(text, origin="<json>")
        return store

    def persist(self) -> None:
        """Rewrite the whole store file.  No-op for in-memory stores."""
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(self.to_json(), encoding="utf-8")
        logger.debug("Persisted %d trusted hash(es) to %s.", len(self._hashes), self._path)

    def load(self) -> None:
        """Load hashes from the store file.  A missing or corrupt file yields an empty store."""
        if self._path is None:
            return
        if not self._path.exists():
            logger.debug("No trust store at %s, starting empty.", self._path)
            return
        try:
            self._hashes = _parse(self._path.read_text(encoding="utf-8"), origin=str(self._path))
        except (OSError, ValueError):
            logger.exception("Failed to load trust store from %s.", self._path)
            return
        logger.info("Loaded %d trusted hash(es) from %s.", len(self._hashes), self._path)

    def __repr__(self) -> str:
        return f"TrustStore(path={self._path!r}, size={len(self._hashes)})"


def _parse(text: str, *, origin: str) -> set[str]:
    raw = json.loads(text)
    if not isinstance(raw, list):
        raise ValueError(f"Trust store {origin} is not a JSON array")
    hashes: set[str] = set()
    for value in raw:
        if is_valid_hash(value):
            hashes.add(value)
        else:
            logger.warning("Ignoring invalid entry %r in trust store %s.", value, origin)
    return hashes
