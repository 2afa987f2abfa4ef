"""Runtime pattern-locator over opaque host code.

The host ships without a symbol table, so target functions are found by
anchor strings known to sit next to them.  From the anchor the locator walks
backward character by character to a structural marker that only appears at
a declaration (not a call site) and then collects the identifier in front of
it up to the preceding whitespace.

Everything here is pure and never raises for a miss: an absent anchor means
the host changed and the feature is unavailable this session.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from hostbridge.models.locator import Anchor, LocateMode, LocatorMatch

logger = logging.getLogger(__name__)


def _read_name_backward(code: str, end: int) -> tuple[str, int] | None:
    """Collect characters backward from *end* until whitespace.

    Returns ``(name, start_offset)``; ``None`` when start of text is reached
    first or the name is empty.
    """
    buf: list[str] = []
    for idx in range(end, -1, -1):
        char = code[idx]
        if char.isspace():
            if not buf:
                return None
            return "".join(reversed(buf)), idx + 1
        buf.append(char)
    return None


def find_declared_name(code: str, anchor: Anchor) -> LocatorMatch | None:
    """Name of the declaration whose body contains *anchor*.

    Walks back from the anchor to the nearest ``anchor.marker`` (``"()"``
    by default) and reads the identifier directly in front of it.
    """
    anchor_idx = code.find(anchor.text)
    if anchor_idx == -1:
        return None

    width = len(anchor.marker)
    for char_idx in range(anchor_idx - 1, 0, -1):
        if code[char_idx:char_idx + width] != anchor.marker:
            continue
        found = _read_name_backward(code, char_idx - 1)
        if found is not None:
            name, offset = found
            return LocatorMatch(
                anchor=anchor.name, name=name, offset=offset, anchor_offset=anchor_idx
            )
    return None


def find_enclosing_declaration(code: str, anchor: Anchor) -> LocatorMatch | None:
    """Name and offset of the declaration enclosing a nested block.

    Finds the last ``anchor.block_opener`` before the anchor (the nested
    block), then the last ``(`` before that (the outer argument list), and
    reads the identifier in front of it.
    """
    anchor_idx = code.find(anchor.text)
    if anchor_idx == -1:
        return None

    block_idx = code.rfind(anchor.block_opener, 0, anchor_idx)
    if block_idx == -1:
        return None
    paren_idx = code.rfind("(", 0, block_idx)
    if paren_idx < 1:
        return None

    found = _read_name_backward(code, paren_idx - 1)
    if found is None:
        return None
    name, offset = found
    return LocatorMatch(
        anchor=anchor.name, name=name, offset=offset, anchor_offset=anchor_idx
    )


_STRATEGIES = {
    LocateMode.DECLARED_NAME: find_declared_name,
    LocateMode.ENCLOSING_DECLARATION: find_enclosing_declaration,
}


def locate(code: str, anchor: Anchor) -> LocatorMatch | None:
    """Run the strategy selected by ``anchor.mode``.  ``None`` on a miss."""
    match = _STRATEGIES[anchor.mode](code, anchor)
    if match is None:
        logger.debug("Anchor '%s' not found.", anchor.name)
    return match


def locate_all(code: str, anchors: Iterable[Anchor]) -> dict[str, LocatorMatch]:
    """Search every anchor independently; only hits are returned, keyed by anchor name."""
    matches: dict[str, LocatorMatch] = {}
    for anchor in anchors:
        match = locate(code, anchor)
        if match is not None:
            matches[anchor.name] = match
    return matches
