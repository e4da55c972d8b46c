from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, NamedTuple, Sequence

import rich.repr


type AttributeName = Literal[
    "bold",
    "dim",
    "italic",
    "underline",
    "blink",
    "reverse",
    "hidden",
    "strike",
    "foreground",
    "background",
]

ATTRIBUTE_NAMES: Sequence[AttributeName] = (
    "bold",
    "dim",
    "italic",
    "underline",
    "blink",
    "reverse",
    "hidden",
    "strike",
    "foreground",
    "background",
)
"""Tracked attributes, in the order they are encoded."""


@rich.repr.auto
class Color(NamedTuple):
    """A color as it was selected.

    Colors are compared by how they were selected, not by what they look like.
    `31` and `38;5;1` usually look the same, but a terminal is free to render
    them differently (bold as bright, for instance), so they are distinct.
    """

    kind: Literal["ansi", "indexed", "rgb"]
    """How the color was selected."""
    value: int | tuple[int, int, int]
    """ANSI number (0-15), palette index (0-255), or (red, green, blue)."""

    def __rich_repr__(self) -> rich.repr.Result:
        yield self.kind
        yield self.value


type AttributeValue = bool | str | Color | None

DEFAULT_ATTRIBUTES: Mapping[AttributeName, AttributeValue] = {
    "bold": False,
    "dim": False,
    "italic": False,
    "underline": False,
    "blink": False,
    "reverse": False,
    "hidden": False,
    "strike": False,
    "foreground": None,
    "background": None,
}
"""Attribute values after a reset."""

MAX_PARAMETER_DIGITS = 9
"""Numeric parameters with more digits than this aren't interpreted."""
MAX_PARAMETER = 10**MAX_PARAMETER_DIGITS - 1


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class Text:
    """Bytes to be written as-is (printable text and C0 controls)."""

    data: bytes


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class SetAttributes:
    """Change graphic rendition attributes.

    `changes` is applied in order. A value of `False` or `None` resets the
    attribute to its default.
    """

    changes: tuple[tuple[AttributeName, AttributeValue], ...]

    def __rich_repr__(self) -> rich.repr.Result:
        yield dict(self.changes)

    def as_dict(self) -> dict[AttributeName, AttributeValue]:
        """Net changes (last write wins)."""
        return dict(self.changes)


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class ResetAllAttributes:
    """SGR 0."""


type CursorMode = Literal["absolute", "relative"]
type CursorAxis = Literal["row", "col", "both"]


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class MoveCursor:
    """Move the cursor.

    For relative moves `row` and `col` are signed deltas (down and right are
    positive). For absolute moves they are 1-based targets; an axis not in
    `axis` is ignored.
    """

    mode: CursorMode
    axis: CursorAxis
    row: int = 0
    col: int = 0

    def __rich_repr__(self) -> rich.repr.Result:
        yield self.mode
        yield self.axis
        yield "row", self.row, 0
        yield "col", self.col, 0


type SaveVariant = Literal["dec", "sco"]


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class SaveCursor:
    """Save cursor position and rendition.

    `variant` records the form it was written in ("dec" for `ESC 7`, "sco" for
    `CSI s`). Not every terminal treats the two the same, so it is preserved.
    """

    variant: SaveVariant = "dec"

    def __rich_repr__(self) -> rich.repr.Result:
        yield "variant", self.variant, "dec"


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class RestoreCursor:
    """Restore cursor position and rendition (`ESC 8` or `CSI u`)."""

    variant: SaveVariant = "dec"

    def __rich_repr__(self) -> rich.repr.Result:
        yield "variant", self.variant, "dec"


type EraseMode = Literal[0, 1, 2]


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class EraseInLine:
    """EL: 0 = cursor to end, 1 = start to cursor, 2 = whole line."""

    mode: EraseMode = 0


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class EraseInDisplay:
    """ED: 0 = cursor to end, 1 = start to cursor, 2 = whole display."""

    mode: EraseMode = 0


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class SetScrollRegion:
    """DECSTBM. `bottom` of `None` means the last line."""

    top: int = 1
    bottom: int | None = None

    def __rich_repr__(self) -> rich.repr.Result:
        yield "top", self.top, 1
        yield "bottom", self.bottom, None


@rich.repr.auto
@dataclass(frozen=True, slots=True)
class Opaque:
    """Bytes whose meaning is not tracked, preserved verbatim.

    With a context of "sgr", `data` is one or more SGR parameters that must be
    written inside an SGR sequence. A context of "malformed" marks bytes that
    may have left the terminal part way through a sequence.
    """

    data: bytes
    context: Literal["sgr", "malformed"] | None = None

    def __rich_repr__(self) -> rich.repr.Result:
        yield self.data
        yield "context", self.context, None


type SemanticEvent = (
    Text
    | SetAttributes
    | ResetAllAttributes
    | MoveCursor
    | SaveCursor
    | RestoreCursor
    | EraseInLine
    | EraseInDisplay
    | SetScrollRegion
    | Opaque
)

def is_barrier(event: SemanticEvent) -> bool:
    """Is the event a barrier that optimization may never cross?

    SGR parameters wrapped in an opaque are fences within a run of control
    events, and not barriers.
    """
    match event:
        case Text():
            return True
        case Opaque(context="sgr"):
            return False
        case Opaque():
            return True
    return False


@rich.repr.auto
class EventGroup(NamedTuple):
    """The events produced by a single token, with the token's bytes."""

    raw: bytes
    events: tuple[SemanticEvent, ...]

    def __rich_repr__(self) -> rich.repr.Result:
        yield self.raw
        yield self.events

    @property
    def is_barrier(self) -> bool:
        return any(is_barrier(event) for event in self.events)
