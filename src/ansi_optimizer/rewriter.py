"""Rewrite runs of control events in to fewer, shorter events.

A *run* is the sequence of control events between two barriers (text, or an
opaque sequence). Nothing is moved across a barrier. Within a run, events are
gathered in to *blocks* of attribute changes and cursor motion, separated by
*fences*: erases, save and restore, scroll region changes, and SGR parameters
that are passed through verbatim. Attribute changes and cursor motion commute
(neither depends on the other), so a block reduces to its net effect. Fences
stay in place, but may be dropped if they are provably redundant.

Finally, a run is only replaced if its encoding is strictly shorter than the
bytes it came from. Otherwise the original bytes are passed through verbatim,
so the output is never longer than the input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple

import rich.repr

from ansi_optimizer.events import (
    ATTRIBUTE_NAMES,
    DEFAULT_ATTRIBUTES,
    MAX_PARAMETER,
    AttributeName,
    AttributeValue,
    EraseInDisplay,
    EraseInLine,
    EventGroup,
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
from ansi_optimizer.serializer import Serializer
from ansi_optimizer.state import UNKNOWN, Attributes, TerminalState

log = logging.getLogger(__name__)


@rich.repr.auto
class RewriterOptions(NamedTuple):
    """Options to enable or disable individual rewrites."""

    fold_cursor: bool = True
    """Combine cursor motion in to a net move."""
    collapse_erase: bool = True
    """Drop erases that repeat one that is still in effect."""
    max_sgr_parameters: int = 16
    """Maximum number of parameters packed in to one SGR sequence."""


@rich.repr.auto
@dataclass
class RewriterStats:
    """Counters describing what the rewriter did."""

    runs: int = 0
    """Runs of control events processed."""
    verbatim_runs: int = 0
    """Runs passed through as the original bytes."""
    events_in: int = 0
    """Control events received."""
    events_out: int = 0
    """Control events written."""
    redundant: int = 0
    """Events dropped because they changed nothing."""


def ends_mid_character(data: bytes) -> bool:
    """Check if text ends part way through a UTF-8 encoded character."""
    for size, byte in enumerate(reversed(data[-4:]), 1):
        if byte < 0x80:
            return False
        if byte >= 0xC0:
            expected = 2 if byte < 0xE0 else 3 if byte < 0xF0 else 4
            return size < expected
    return False


class Axis:
    """Net motion on one axis: an optional absolute position, then a relative move."""

    __slots__ = ["absolute", "relative"]

    def __init__(self) -> None:
        self.absolute: int | None = None
        self.relative = 0

    def __repr__(self) -> str:
        return f"Axis(absolute={self.absolute!r}, relative={self.relative!r})"

    def set(self, position: int) -> None:
        self.absolute = position
        self.relative = 0

    def move(self, delta: int) -> None:
        self.relative += delta

    def fits(self, delta: int) -> bool:
        """Check a move can be added without exceeding the largest parameter."""
        return abs(self.relative + delta) <= MAX_PARAMETER

    def target(self, fold: bool) -> tuple[int | None, int]:
        """Get the absolute position and relative move that reach the same place."""
        absolute, relative = self.absolute, self.relative
        # Net motion down or right from a known position can't be clamped
        # differently to the absolute move, up or left can.
        if (
            fold
            and absolute is not None
            and relative > 0
            and absolute + relative <= MAX_PARAMETER
        ):
            return absolute + relative, 0
        return absolute, relative


class Block:
    """Attribute changes and cursor motion between two fences.

    Args:
        attributes: Attributes before the block.
        fold: Fold relative motion in to an absolute position.
    """

    def __init__(self, attributes: Attributes, fold: bool = True) -> None:
        self.before: Attributes = dict(attributes)
        self.after: Attributes = dict(attributes)
        self.fold = fold
        self.row = Axis()
        self.col = Axis()

    def apply_attributes(self, event: SetAttributes | ResetAllAttributes) -> None:
        if isinstance(event, ResetAllAttributes):
            self.after.update(DEFAULT_ATTRIBUTES)
        else:
            self.after.update(event.as_dict())

    def can_apply_cursor(self, event: MoveCursor) -> bool:
        if event.mode == "absolute":
            return True
        return self.row.fits(event.row) and self.col.fits(event.col)

    def apply_cursor(self, event: MoveCursor) -> None:
        match event:
            case MoveCursor("relative", _, row, col):
                self.row.move(row)
                self.col.move(col)
            case MoveCursor("absolute", "both", row, col):
                self.row.set(row)
                self.col.set(col)
            case MoveCursor("absolute", "row", row, _):
                self.row.set(row)
            case MoveCursor("absolute", "col", _, col):
                self.col.set(col)

    def cursor_events(self) -> list[MoveCursor]:
        """Get the net cursor motion."""
        row, row_relative = self.row.target(self.fold)
        col, col_relative = self.col.target(self.fold)
        events: list[MoveCursor] = []
        if row is not None and col is not None:
            events.append(MoveCursor("absolute", "both", row, col))
        elif row is not None:
            events.append(MoveCursor("absolute", "row", row, 0))
        elif col is not None:
            events.append(MoveCursor("absolute", "col", 0, col))
        if row_relative:
            events.append(MoveCursor("relative", "row", row_relative, 0))
        if col_relative:
            events.append(MoveCursor("relative", "col", 0, col_relative))
        return events

    @property
    def is_empty(self) -> bool:
        """Does the block leave the tracked state as it was?"""
        return not self.cursor_events() and not self.attribute_changes()

    def attribute_changes(self) -> dict[AttributeName, AttributeValue]:
        """Get the attributes that differ from the state before the block."""
        before, after = self.before, self.after
        changes: dict[AttributeName, AttributeValue] = {}
        for name in ATTRIBUTE_NAMES:
            value = after[name]
            if value is UNKNOWN:
                continue
            if before[name] is UNKNOWN or before[name] != value:
                changes[name] = value
        if changes.get("bold") is False or changes.get("dim") is False:
            # Turning off bold or dim turns off both
            for name in ("bold", "dim"):
                if name not in changes and after[name] is not UNKNOWN:
                    changes[name] = after[name]
        return changes

    def attribute_candidates(self) -> list[list[SemanticEvent]]:
        """Get the alternative ways of reaching the attributes after the block."""
        changes = self.attribute_changes()
        if not changes:
            return [[]]
        candidates: list[list[SemanticEvent]] = [[SetAttributes(tuple(changes.items()))]]
        after = self.after
        if all(after[name] is not UNKNOWN for name in ATTRIBUTE_NAMES):
            non_default = tuple(
                (name, after[name])
                for name in ATTRIBUTE_NAMES
                if after[name] != DEFAULT_ATTRIBUTES[name]
            )
            reset: list[SemanticEvent] = [ResetAllAttributes()]
            if non_default:
                reset.append(SetAttributes(non_default))
            candidates.append(reset)
        return candidates


class Rewriter:
    """Optimize event groups, one run at a time.

    Args:
        options: Rewriter options.
        serializer: Serializer used to measure encodings.
    """

    def __init__(
        self,
        options: RewriterOptions | None = None,
        serializer: Serializer | None = None,
    ) -> None:
        self.options = options or RewriterOptions()
        self.serializer = serializer or Serializer(self.options.max_sgr_parameters)
        self.state = TerminalState()
        self.stats = RewriterStats()
        self._run: list[SemanticEvent] = []
        self._run_raw = bytearray()
        self._run_events = 0
        self._block: Block | None = None
        self._mid_sequence = False
        self._mid_character = False
        self._text_tail = b""

    def reset(self) -> None:
        """Discard any pending run and return to the start of a stream."""
        self.state = TerminalState()
        self.stats = RewriterStats()
        self._run = []
        self._run_raw = bytearray()
        self._run_events = 0
        self._block = None
        self._mid_sequence = False
        self._mid_character = False
        self._text_tail = b""

    def feed(self, group: EventGroup) -> Iterator[SemanticEvent]:
        """Feed a group of events.

        Args:
            group: Events from a single token.

        Yields:
            Optimized events, which may be held back until the end of the run.
        """
        if group.is_barrier:
            yield from self._flush()
            for event in group.events:
                self.state.apply(event)
                match event:
                    case Text(data):
                        # Text may arrive in pieces, so check the end of all of it
                        self._text_tail = (self._text_tail + data)[-4:]
                        self._mid_character = ends_mid_character(self._text_tail)
                    case Opaque(context="malformed"):
                        self._mid_sequence = True
                        self._mid_character = False
                        self._text_tail = b""
                    case Opaque():
                        self._mid_sequence = False
                        self._mid_character = False
                        self._text_tail = b""
                yield event
            return

        self._run_raw.extend(group.raw)
        for event in group.events:
            self._run_events += 1
            self._add(event)

    def feed_all(self, groups: Iterable[EventGroup]) -> Iterator[SemanticEvent]:
        """Feed event groups, then finish.

        Args:
            groups: Event groups.

        Yields:
            Optimized events.
        """
        for group in groups:
            yield from self.feed(group)
        yield from self.finish()

    def finish(self) -> Iterator[SemanticEvent]:
        """Flush the pending run at the end of the stream.

        Yields:
            Optimized events.
        """
        yield from self._flush()

    def _add(self, event: SemanticEvent) -> None:
        match event:
            case SetAttributes() | ResetAllAttributes():
                self._get_block().apply_attributes(event)
            case MoveCursor() if self.options.fold_cursor:
                block = self._get_block()
                if not block.can_apply_cursor(event):
                    self._close_block()
                    block = self._get_block()
                block.apply_cursor(event)
            case _:
                self._fence(event)

    def _get_block(self) -> Block:
        if self._block is None:
            self._block = Block(self.state.attributes, self.state.cursor_folding_safe)
        return self._block

    def _emit(self, event: SemanticEvent) -> None:
        self._run.append(event)
        self.state.apply(event)

    def _close_block(self) -> None:
        block = self._block
        if block is None:
            return
        self._block = None
        candidates = block.attribute_candidates()
        # min is stable, so on a tie the plain changes win over a reset
        attribute_events = min(candidates, key=self.serializer.cost)
        for event in [*block.cursor_events(), *attribute_events]:
            if self.state.would_be_noop(event):
                self.stats.redundant += 1
            else:
                self._emit(event)

    def _is_redundant(self, event: SemanticEvent) -> bool:
        """Check if a fence would change nothing, given the open block before it."""
        block = self._block
        block_is_empty = block is None or block.is_empty
        previous = self._run[-1] if self._run and block_is_empty else None
        match event:
            case EraseInLine() | EraseInDisplay() if self.options.collapse_erase:
                if block is None:
                    return self.state.would_be_noop(event)
                if block.attribute_changes():
                    return False
                return self.state.would_be_noop(
                    event, cursor_moved=bool(block.cursor_events())
                )
            case SaveCursor() | RestoreCursor():
                # Nothing has happened since the last identical save or restore
                return previous == event
            case SetScrollRegion():
                return previous == event
        return False

    def _fence(self, event: SemanticEvent) -> None:
        # A redundant fence leaves the block open, so motion either side of it folds
        if self._is_redundant(event):
            self.stats.redundant += 1
            return
        self._close_block()
        run = self._run
        if isinstance(event, SetScrollRegion):
            # Only the last of adjacent scroll regions has an effect
            while run and isinstance(run[-1], SetScrollRegion):
                run.pop()
                self.stats.redundant += 1
        self._emit(event)

    def _flush(self) -> Iterator[SemanticEvent]:
        self._close_block()
        run = self._run
        raw = bytes(self._run_raw)
        events_in = self._run_events
        self._run = []
        self._run_raw = bytearray()
        self._run_events = 0
        if not raw:
            return

        stats = self.stats
        stats.runs += 1
        stats.events_in += events_in
        encoded = self.serializer.encode_all(run)
        # Removing a run entirely could join text to an incomplete sequence or
        # character that preceded it
        vanishes_unsafely = not run and (self._mid_sequence or self._mid_character)
        if len(encoded) >= len(raw) or vanishes_unsafely:
            log.debug("run passed through verbatim: %r", raw)
            stats.verbatim_runs += 1
            stats.events_out += events_in
            self._mid_sequence = False
            self._mid_character = False
            self._text_tail = b""
            yield Opaque(raw)
            return

        stats.events_out += len(run)
        if run:
            self._mid_sequence = False
            self._mid_character = False
            self._text_tail = b""
        yield from run
