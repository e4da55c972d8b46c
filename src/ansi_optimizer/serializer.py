"""Encode semantic events as bytes, in their shortest form."""

from __future__ import annotations

from typing import Iterable, Mapping

from ansi_optimizer.events import (
    ATTRIBUTE_NAMES,
    AttributeName,
    AttributeValue,
    Color,
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

CSI = b"\x1b["

SGR_ON: Mapping[AttributeName, bytes] = {
    "bold": b"1",
    "dim": b"2",
    "italic": b"3",
    "underline": b"4",
    "reverse": b"7",
    "hidden": b"8",
    "strike": b"9",
}
SGR_OFF: Mapping[AttributeName, bytes] = {
    "italic": b"23",
    "underline": b"24",
    "blink": b"25",
    "reverse": b"27",
    "hidden": b"28",
    "strike": b"29",
}
BLINK: Mapping[str, bytes] = {"slow": b"5", "rapid": b"6"}

CURSOR_FINALS: Mapping[tuple[str, bool], bytes] = {
    ("row", False): b"A",
    ("row", True): b"B",
    ("col", True): b"C",
    ("col", False): b"D",
}

EXTENDED_COLOR_PREFIXES = frozenset({b"38", b"48", b"58"})
"""Opaque SGR parameters starting with these may take following parameters as arguments."""

SAVE: Mapping[str, bytes] = {"dec": b"\x1b7", "sco": b"\x1b[s"}
RESTORE: Mapping[str, bytes] = {"dec": b"\x1b8", "sco": b"\x1b[u"}


def encode_number(value: int, default: int = 1) -> bytes:
    """Encode a numeric parameter, omitting it if it is the default."""
    return b"" if value == default else str(value).encode()


def encode_color(color: Color | None, background: bool) -> bytes:
    """Encode a color as SGR parameter(s)."""
    if color is None:
        return b"49" if background else b"39"
    match color:
        case Color("ansi", int(number)) if number < 8:
            base = 40 if background else 30
            return str(base + number).encode()
        case Color("ansi", int(number)):
            base = 100 if background else 90
            return str(base + number - 8).encode()
        case Color("indexed", int(index)):
            prefix = b"48" if background else b"38"
            return b"%s;5;%d" % (prefix, index)
        case Color("rgb", (red, green, blue)):
            prefix = b"48" if background else b"38"
            return b"%s;2;%d;%d;%d" % (prefix, red, green, blue)
    raise ValueError(f"can't encode color {color!r}")


def sgr_parameters(changes: Mapping[AttributeName, AttributeValue]) -> list[bytes]:
    """Get SGR parameters for net attribute changes.

    Bold and dim share a reset code (22), so turning either off resets both,
    and the one that should remain is switched back on afterwards.

    Args:
        changes: Mapping of attribute name on to new value.

    Returns:
        List of parameters, some of which may contain sub-parameters.
    """
    parameters: list[bytes] = []
    if changes.get("bold") is False or changes.get("dim") is False:
        parameters.append(b"22")
        if changes.get("bold") is True:
            parameters.append(b"1")
        if changes.get("dim") is True:
            parameters.append(b"2")
    else:
        if changes.get("bold"):
            parameters.append(b"1")
        if changes.get("dim"):
            parameters.append(b"2")

    for name in ATTRIBUTE_NAMES:
        if name not in changes or name in ("bold", "dim"):
            continue
        value = changes[name]
        match name:
            case "foreground" | "background":
                parameters.append(encode_color(value, name == "background"))
            case "blink":
                parameters.append(BLINK[value] if value else SGR_OFF["blink"])
            case _:
                parameters.append(SGR_ON[name] if value else SGR_OFF[name])
    return parameters


def count_parameters(parameters: Iterable[bytes]) -> int:
    """Count SGR parameters, including those packed in to a single entry."""
    return sum(parameter.count(b";") + 1 for parameter in parameters)


class Serializer:
    """Encode events as the shortest equivalent bytes.

    Adjacent attribute events (including SGR parameters held in an `Opaque`) are
    packed in to a single SGR sequence, up to `max_sgr_parameters` parameters.

    Args:
        max_sgr_parameters: Maximum number of parameters in one SGR sequence.
    """

    def __init__(self, max_sgr_parameters: int = 16) -> None:
        if max_sgr_parameters < 1:
            raise ValueError("max_sgr_parameters must be at least 1")
        self.max_sgr_parameters = max_sgr_parameters

    def __repr__(self) -> str:
        return f"Serializer(max_sgr_parameters={self.max_sgr_parameters})"

    def encode(self, event: SemanticEvent) -> bytes:
        """Encode a single event.

        Args:
            event: A semantic event.

        Returns:
            Encoded bytes.
        """
        return self.encode_all((event,))

    def encode_all(self, events: Iterable[SemanticEvent]) -> bytes:
        """Encode a sequence of events.

        Args:
            events: Semantic events.

        Returns:
            Encoded bytes.
        """
        output: list[bytes] = []
        sgr: list[bytes] = []
        sgr_count = 0

        def flush_sgr() -> None:
            nonlocal sgr_count
            if sgr:
                if sgr[0] == b"0":
                    # An empty parameter is a reset
                    sgr[0] = b""
                output.append(b"%s%sm" % (CSI, b";".join(sgr)))
                del sgr[:]
                sgr_count = 0

        for event in events:
            match event:
                case ResetAllAttributes():
                    parameters = [b"0"]
                case SetAttributes():
                    parameters = sgr_parameters(event.as_dict())
                case Opaque(data, "sgr"):
                    parameters = [data]
                case _:
                    flush_sgr()
                    output.append(self.encode_control(event))
                    continue
            if not parameters:
                continue
            count = count_parameters(parameters)
            if sgr and sgr_count + count > self.max_sgr_parameters:
                flush_sgr()
            sgr.extend(parameters)
            sgr_count += count
            if (
                isinstance(event, Opaque)
                and event.data.split(b";", 1)[0] in EXTENDED_COLOR_PREFIXES
            ):
                flush_sgr()
        flush_sgr()
        return b"".join(output)

    def encode_control(self, event: SemanticEvent) -> bytes:
        """Encode an event that isn't part of an SGR sequence."""
        match event:
            case Text(data) | Opaque(data):
                return data

            case MoveCursor("relative", axis, row, col):
                encoded = b""
                if row and axis != "col":
                    final = CURSOR_FINALS["row", row > 0]
                    encoded += b"%s%s%s" % (CSI, encode_number(abs(row)), final)
                if col and axis != "row":
                    final = CURSOR_FINALS["col", col > 0]
                    encoded += b"%s%s%s" % (CSI, encode_number(abs(col)), final)
                return encoded

            case MoveCursor("absolute", "both", row, col):
                if col == 1:
                    return b"%s%sH" % (CSI, encode_number(row))
                return b"%s%s;%dH" % (CSI, encode_number(row), col)

            case MoveCursor("absolute", "row", row, _):
                return b"%s%sd" % (CSI, encode_number(row))

            case MoveCursor("absolute", "col", _, col):
                return b"%s%sG" % (CSI, encode_number(col))

            case SaveCursor(variant):
                return SAVE[variant]

            case RestoreCursor(variant):
                return RESTORE[variant]

            case EraseInLine(mode):
                return b"%s%sK" % (CSI, encode_number(mode, 0))

            case EraseInDisplay(mode):
                return b"%s%sJ" % (CSI, encode_number(mode, 0))

            case SetScrollRegion(top, None):
                return b"%s%sr" % (CSI, encode_number(top))

            case SetScrollRegion(top, bottom):
                return b"%s%s;%dr" % (CSI, encode_number(top), bottom)

        raise ValueError(f"can't encode {event!r}")

    def cost(self, events: Iterable[SemanticEvent]) -> int:
        """The number of bytes required to encode events."""
        return len(self.encode_all(events))
