"""Pattern-locator models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LocateMode(str, Enum):
    """How to walk back from an anchor to the declaration it belongs to.

    * ``declared_name`` — the anchor sits inside the target's body; walk back
      to the first ``marker`` (an empty argument list) and read the name
      in front of it.
    * ``enclosing_declaration`` — the anchor sits inside a nested block of the
      target; walk back to the last ``block_opener`` before the anchor, then to
      the argument-list opener before that, and read the name plus its offset.
    """

    DECLARED_NAME = "declared_name"
    ENCLOSING_DECLARATION = "enclosing_declaration"


class Anchor(BaseModel):
    """A short string known to appear uniquely next to a target declaration.

    Examples
    --------
    >>> anchor = Anchor(name="get_store", text='RuntimeError("No global store set")')
    >>> anchor.marker
    '()'
    """

    model_config = ConfigDict(frozen=True)

    name: str
    text: str = Field(min_length=1)
    mode: LocateMode = LocateMode.DECLARED_NAME
    marker: str = "()"
    block_opener: str = ":"


class LocatorMatch(BaseModel):
    """A located declaration: the inferred identifier and its source offset."""

    model_config = ConfigDict(frozen=True)

    anchor: str
    name: str
    offset: int  # index of the first character of the declared name
    anchor_offset: int
