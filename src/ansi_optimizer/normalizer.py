"""Map tokens on to semantic events."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Mapping, Sequence

from ansi_optimizer.diagnostics import Diagnostic, DiagnosticsHandler, log_diagnostic
from ansi_optimizer.events import (
    AttributeName,
    AttributeValue,
    MAX_PARAMETER_DIGITS,
    Color,
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
from ansi_optimizer.tokens import Escape, Malformed, TextRun, Token


type AttributeChanges = tuple[tuple[AttributeName, AttributeValue], ...]

SGR_ATTRIBUTE_MAP: Mapping[int, AttributeChanges] = {
    1: (("bold", True),),
    2: (("dim", True),),
    3: (("italic", True),),
    4: (("underline", True),),
    5: (("blink", "slow"),),
    6: (("blink", "rapid"),),
    7: (("reverse", True),),
    8: (("hidden", True),),
    9: (("strike", True),),
    22: (("bold", False), ("dim", False)),
    23: (("italic", False),),
    24: (("underline", False),),
    25: (("blink", False),),
    27: (("reverse", False),),
    28: (("hidden", False),),
    29: (("strike", False),),
    39: (("foreground", None),),
    49: (("background", None),),
    **{code: (("foreground", Color("ansi", code - 30)),) for code in range(30, 38)},
    **{code: (("background", Color("ansi", code - 40)),) for code in range(40, 48)},
    **{code: (("foreground", Color("ansi", code - 90 + 8)),) for code in range(90, 98)},
    **{
        code: (("background", Color("ansi", code - 100 + 8)),)
        for code in range(100, 108)
    },
}
"""SGR codes that map directly on to attribute changes."""

EXTENDED_COLOR_TARGETS: Mapping[int, AttributeName] = {
    38: "foreground",
    48: "background",
}

EXTENDED_COLOR_CODES = frozenset({38, 48, 58})
"""Codes followed by color arguments (58 is underline color, which is not tracked)."""

RE_NUMBER = re.compile(rb"\d*")
RE_PARAMETERS = re.compile(rb"[\d;]*")
RE_SGR_PARAMETERS = re.compile(rb"[\d;:]*")

CURSOR_RELATIVE: Mapping[bytes, tuple[int, int]] = {
    b"A": (-1, 0),
    b"B": (+1, 0),
    b"C": (0, +1),
    b"D": (0, -1),
}

SINGLE_ESCAPES: Mapping[bytes, SemanticEvent] = {
    b"7": SaveCursor("dec"),
    b"8": RestoreCursor("dec"),
}


def parse_number(parameter: bytes) -> int | None:
    """Parse a decimal parameter.

    Args:
        parameter: Parameter bytes.

    Returns:
        The value (empty is 0), or `None` if it is not a plain decimal of at
        most `MAX_PARAMETER_DIGITS` digits.
    """
    if len(parameter) > MAX_PARAMETER_DIGITS or not RE_NUMBER.fullmatch(parameter):
        return None
    return int(parameter) if parameter else 0


def parse_parameters(parameters: bytes) -> list[int] | None:
    """Parse semicolon separated decimal parameters.

    Args:
        parameters: Parameter bytes of a control sequence.

    Returns:
        List of values, with empty parameters as 0, or `None` if the parameters
        contain anything other than digits and semicolons, or a value is too long.
    """
    if not parameters:
        return []
    if not RE_PARAMETERS.fullmatch(parameters):
        return None
    values: list[int] = []
    for parameter in parameters.split(b";"):
        if (value := parse_number(parameter)) is None:
            return None
        values.append(value)
    return values


@lru_cache(maxsize=1024)
def parse_sgr(parameters: bytes) -> tuple[SemanticEvent, ...]:
    """Parse the parameters of an SGR sequence in to events.

    Known codes that follow each other are gathered in to a single
    `SetAttributes`. A code that isn't understood becomes an `Opaque` with an
    "sgr" context, holding that parameter and any color arguments it takes.
    If color arguments can't be parsed, the remaining parameters are kept
    together in a single `Opaque`, since there is no telling where they end.

    Args:
        parameters: SGR parameter bytes (between "CSI" and "m").

    Returns:
        Events in the order of the codes.
    """
    events: list[SemanticEvent] = []
    changes: list[tuple[AttributeName, AttributeValue]] = []

    def flush() -> None:
        if changes:
            events.append(SetAttributes(tuple(changes)))
            del changes[:]

    def opaque(parameters: Sequence[bytes]) -> None:
        flush()
        events.append(Opaque(b";".join(parameters), "sgr"))

    def extended_color_size(index: int) -> int:
        """Number of parameters used by an extended color at `index`, or 0."""
        match codes[index + 1 : index + 5]:
            case [5, int(color), *_] if color <= 255:
                return 3
            case [2, int(red), int(green), int(blue)] if max(red, green, blue) <= 255:
                return 5
        return 0

    split_parameters = parameters.split(b";")
    codes = [parse_number(parameter) for parameter in split_parameters]
    index = 0
    while index < len(codes):
        code = codes[index]
        if code == 0:
            flush()
            events.append(ResetAllAttributes())
            index += 1
        elif code is not None and (
            attribute_changes := SGR_ATTRIBUTE_MAP.get(code)
        ):
            changes.extend(attribute_changes)
            index += 1
        elif code in EXTENDED_COLOR_CODES:
            if not (size := extended_color_size(index)):
                # The remaining parameters can't be reliably split
                opaque(split_parameters[index:])
                break
            if (target := EXTENDED_COLOR_TARGETS.get(code)) is None:
                opaque(split_parameters[index : index + size])
            else:
                arguments = codes[index + 2 : index + size]
                if size == 3:
                    color = Color("indexed", arguments[0])
                else:
                    red, green, blue = arguments
                    color = Color("rgb", (red, green, blue))
                changes.append((target, color))
            index += size
        else:
            opaque(split_parameters[index : index + 1])
            index += 1
    flush()
    return tuple(events)


def parse_csi(
    parameters: bytes, intermediates: bytes, final: bytes
) -> tuple[SemanticEvent, ...] | None:
    """Parse a control sequence in to semantic events.

    Args:
        parameters: Parameter bytes.
        intermediates: Intermediate bytes.
        final: Final byte.

    Returns:
        Semantic events, or `None` if the sequence isn't recognized.
    """
    if intermediates:
        return None
    if final == b"m":
        if not RE_SGR_PARAMETERS.fullmatch(parameters):
            # Private or unusual parameter forms, e.g. "CSI > 4 ; 2 m"
            return None
        return parse_sgr(parameters)

    if (values := parse_parameters(parameters)) is None:
        return None

    match final, values:
        case b"A" | b"B" | b"C" | b"D", [] | [_]:
            count = max(values[0] if values else 1, 1)
            row_sign, col_sign = CURSOR_RELATIVE[final]
            axis = "row" if row_sign else "col"
            return (MoveCursor("relative", axis, row_sign * count, col_sign * count),)
        case b"H" | b"f", [] | [_] | [_, _]:
            row, col = (values + [1, 1])[:2]
            return (MoveCursor("absolute", "both", max(row, 1), max(col, 1)),)
        case b"G", [] | [_]:
            col = values[0] if values else 1
            return (MoveCursor("absolute", "col", 0, max(col, 1)),)
        case b"d", [] | [_]:
            row = values[0] if values else 1
            return (MoveCursor("absolute", "row", max(row, 1), 0),)
        case b"J", [] | [0 | 1 | 2]:
            return (EraseInDisplay(values[0] if values else 0),)
        case b"K", [] | [0 | 1 | 2]:
            return (EraseInLine(values[0] if values else 0),)
        case b"r", [] | [_] | [_, _]:
            top, bottom = (values + [0, 0])[:2]
            region = SetScrollRegion(top or 1, bottom or None)
            if region.bottom is not None and region.top >= region.bottom:
                return None
            return (region,)
        case b"s", []:
            return (SaveCursor("sco"),)
        case b"u", []:
            return (RestoreCursor("sco"),)
    return None


class Normalizer:
    """Convert tokens in to groups of semantic events."""

    def __init__(self, diagnostics: DiagnosticsHandler | None = log_diagnostic) -> None:
        self.diagnostics = diagnostics

    def _report(self, diagnostic: Diagnostic) -> None:
        if self.diagnostics is not None:
            self.diagnostics(diagnostic)

    def normalize(self, token: Token) -> EventGroup:
        """Normalize a single token.

        Args:
            token: A token from the lexer.

        Returns:
            An event group with the token's bytes.
        """
        match token:
            case TextRun(data):
                return EventGroup(data, (Text(data),))

            case Malformed(data, reason, offset):
                self._report(Diagnostic("malformed_sequence", data, offset, reason))
                return EventGroup(data, (Opaque(data, "malformed"),))

            case Escape("csi", parameters, intermediates, final):
                raw = token.raw
                events = parse_csi(parameters, intermediates, final)
                if events is None:
                    self._report(
                        Diagnostic("unrecognized_sequence", raw, token.offset)
                    )
                    return EventGroup(raw, (Opaque(raw),))
                for event in events:
                    if isinstance(event, Opaque):
                        self._report(
                            Diagnostic(
                                "unrecognized_sequence",
                                raw,
                                token.offset,
                                f"SGR parameter {event.data!r}",
                            )
                        )
                return EventGroup(raw, events)

            case Escape("escape", _, b"", final) if final in SINGLE_ESCAPES:
                return EventGroup(token.raw, (SINGLE_ESCAPES[final],))

            case _:
                raw = token.raw
                self._report(Diagnostic("unrecognized_sequence", raw, token.offset))
                return EventGroup(raw, (Opaque(raw),))

    def normalize_all(self, tokens: Sequence[Token]) -> list[EventGroup]:
        """Normalize a sequence of tokens.

        Args:
            tokens: Tokens.

        Returns:
            List of event groups.
        """
        return [self.normalize(token) for token in tokens]
