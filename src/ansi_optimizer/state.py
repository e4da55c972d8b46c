"""A minimal model of the terminal state, used to spot redundant events."""

from __future__ import annotations

from typing import Mapping, NamedTuple

import rich.repr

from ansi_optimizer.events import (
    ATTRIBUTE_NAMES,
    DEFAULT_ATTRIBUTES,
    AttributeName,
    AttributeValue,
    EraseInDisplay,
    EraseInLine,
    MoveCursor,
    Opaque,
    ResetAllAttributes,
    RestoreCursor,
    SaveCursor,
    SemanticEvent,
    SetAttributes,
    SetScrollRegion,
    Text,
)


class Unknown:
    """Sentinel for a value that may have been changed by an opaque sequence."""

    _instance: Unknown | None = None

    def __new__(cls) -> Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"

    def __bool__(self) -> bool:
        return False


UNKNOWN = Unknown()

type TrackedValue = AttributeValue | Unknown
type Attributes = dict[AttributeName, TrackedValue]

DEFAULT_SCROLL_REGION = SetScrollRegion()

ERASE_WHOLE_DISPLAY = EraseInDisplay(2)

ERASE_COVERS: Mapping[EraseInLine | EraseInDisplay, frozenset] = {
    EraseInDisplay(0): frozenset({EraseInDisplay(0), EraseInLine(0)}),
    EraseInDisplay(1): frozenset({EraseInDisplay(1), EraseInLine(1)}),
    EraseInLine(0): frozenset({EraseInLine(0)}),
    EraseInLine(1): frozenset({EraseInLine(1)}),
    EraseInLine(2): frozenset({EraseInLine(0), EraseInLine(1), EraseInLine(2)}),
}
"""Erases that a previous erase makes redundant, if the cursor didn't move."""


def default_attributes() -> Attributes:
    return dict(DEFAULT_ATTRIBUTES)


def unknown_attributes() -> Attributes:
    return {name: UNKNOWN for name in ATTRIBUTE_NAMES}


@rich.repr.auto
class StateDelta(NamedTuple):
    """What changed when an event was applied."""

    attributes: tuple[AttributeName, ...] = ()
    """Attributes with a new value (or that became unknown)."""
    cursor_moved: bool = False
    """The cursor may have moved."""
    scroll_region: bool = False
    """The scroll region changed."""
    invalidated: bool = False
    """Tracked state was lost to an opaque sequence."""

    def __rich_repr__(self) -> rich.repr.Result:
        yield "attributes", self.attributes, ()
        yield "cursor_moved", self.cursor_moved, False
        yield "scroll_region", self.scroll_region, False
        yield "invalidated", self.invalidated, False

    @property
    def changed(self) -> bool:
        return bool(
            self.attributes
            or self.cursor_moved
            or self.scroll_region
            or self.invalidated
        )


NO_CHANGE = StateDelta()


class TerminalState:
    """Cumulative terminal state, as far as it can be proven.

    The state starts at terminal defaults. Anything an opaque sequence could have
    changed becomes `UNKNOWN`, and is never considered redundant until an event
    sets it again.
    """

    def __init__(self) -> None:
        self.attributes: Attributes = default_attributes()
        """Current graphic rendition."""
        self.modes_known = True
        """Are the cursor modes (origin mode, margins) known to be at defaults?"""
        self.scroll_region: SetScrollRegion | Unknown = DEFAULT_SCROLL_REGION
        """Last known scroll region."""
        self.last_erase: EraseInLine | EraseInDisplay | None = None
        """The most recent erase, if nothing has been written or styled since."""
        self.cursor_moved = False
        """Has the cursor moved since `last_erase`?"""

    def __rich_repr__(self) -> rich.repr.Result:
        yield "attributes", self.attributes
        yield "modes_known", self.modes_known
        yield "scroll_region", self.scroll_region
        yield "last_erase", self.last_erase, None

    @property
    def cursor_folding_safe(self) -> bool:
        """Can relative motion be folded in to an absolute position?

        Only when no margin or origin mode could clamp the motion.
        """
        return self.modes_known and self.scroll_region == DEFAULT_SCROLL_REGION

    def _set_attributes(
        self, attributes: Mapping[AttributeName, TrackedValue]
    ) -> StateDelta:
        current = self.attributes
        changed = tuple(
            name
            for name, value in attributes.items()
            if current[name] is UNKNOWN or current[name] != value
        )
        current.update(attributes)
        if changed:
            self.last_erase = None
        return StateDelta(attributes=changed)

    def would_be_noop(self, event: SemanticEvent, cursor_moved: bool = False) -> bool:
        """Check if applying an event would change nothing that is tracked.

        Args:
            event: A semantic event.
            cursor_moved: The cursor is moved before the event is applied.

        Returns:
            `True` if the event is provably redundant.
        """
        attributes = self.attributes
        match event:
            case SetAttributes():
                return all(
                    attributes[name] is not UNKNOWN and attributes[name] == value
                    for name, value in event.as_dict().items()
                )
            case ResetAllAttributes():
                return attributes == DEFAULT_ATTRIBUTES
            case MoveCursor("relative", _, row, col):
                return row == 0 and col == 0
            case EraseInLine() | EraseInDisplay():
                last_erase = self.last_erase
                if last_erase is None:
                    return False
                if last_erase == ERASE_WHOLE_DISPLAY:
                    return True
                if self.cursor_moved or cursor_moved:
                    return False
                return event in ERASE_COVERS.get(last_erase, ())
        return False

    def apply(self, event: SemanticEvent) -> StateDelta:
        """Update the state with an event.

        Args:
            event: A semantic event.

        Returns:
            A summary of what changed.
        """
        match event:
            case Text():
                self.last_erase = None
                return StateDelta(cursor_moved=True)

            case SetAttributes():
                return self._set_attributes(event.as_dict())

            case ResetAllAttributes():
                return self._set_attributes(DEFAULT_ATTRIBUTES)

            case MoveCursor():
                if self.would_be_noop(event):
                    return NO_CHANGE
                self.cursor_moved = True
                return StateDelta(cursor_moved=True)

            case SaveCursor():
                return NO_CHANGE

            case RestoreCursor():
                # Restores rendition saved at a point we can't be sure of
                delta = self._set_attributes(unknown_attributes())
                self.cursor_moved = True
                return delta._replace(cursor_moved=True)

            case EraseInLine() | EraseInDisplay():
                self.last_erase = event
                self.cursor_moved = False
                return NO_CHANGE

            case SetScrollRegion():
                changed = self.scroll_region != event
                self.scroll_region = event
                self.cursor_moved = True
                return StateDelta(cursor_moved=True, scroll_region=changed)

            case Opaque(context="sgr"):
                delta = self._set_attributes(unknown_attributes())
                return delta._replace(invalidated=True)

            case Opaque():
                self._set_attributes(unknown_attributes())
                self.modes_known = False
                self.scroll_region = UNKNOWN
                self.last_erase = None
                return StateDelta(
                    attributes=tuple(ATTRIBUTE_NAMES),
                    cursor_moved=True,
                    scroll_region=True,
                    invalidated=True,
                )

        return NO_CHANGE
