"""Byte level lexer splitting a terminal stream in to tokens.

The lexer is a plain state machine. Its complete state is available as a
`ParserPosition`, so a stream may be fed in arbitrary chunks, and the lexer
may be suspended and restored between them.
"""

from __future__ import annotations

from typing import Iterable, Iterator, Literal, Mapping, NamedTuple

import rich.repr

from ansi_optimizer.tokens import Escape, EscapeKind, Malformed, TextRun, Token


type LexerState = Literal[
    "ground",
    "escape",
    "escape_intermediate",
    "csi_entry",
    "csi_param",
    "csi_intermediate",
    "osc_string",
    "dcs_passthrough",
    "apc_passthrough",
    "pm_passthrough",
    "sos_passthrough",
    "string_escape",
]

ESC = 0x1B
BEL = 0x07
CAN = 0x18
SUB = 0x1A
BACKSLASH = 0x5C

PARAMETER_BYTES = range(0x30, 0x3F + 1)
INTERMEDIATE_BYTES = range(0x20, 0x2F + 1)
CSI_FINAL_BYTES = range(0x40, 0x7E + 1)
ESCAPE_FINAL_BYTES = range(0x30, 0x7E + 1)

STRING_STATES: frozenset[LexerState] = frozenset(
    {
        "osc_string",
        "dcs_passthrough",
        "apc_passthrough",
        "pm_passthrough",
        "sos_passthrough",
        "string_escape",
    }
)

INTRODUCER_STATES: Mapping[int, LexerState] = {
    ord("["): "csi_entry",
    ord("]"): "osc_string",
    ord("P"): "dcs_passthrough",
    ord("_"): "apc_passthrough",
    ord("^"): "pm_passthrough",
    ord("X"): "sos_passthrough",
}

STRING_KINDS: Mapping[int, EscapeKind] = {
    ord("]"): "osc",
    ord("P"): "dcs",
    ord("_"): "apc",
    ord("^"): "pm",
    ord("X"): "sos",
}

STRING_TERMINATOR = b"\x1b\\"


@rich.repr.auto
class ParserPosition(NamedTuple):
    """Everything required to resume lexing mid-stream."""

    state: LexerState = "ground"
    """State machine state."""
    pending: bytes = b""
    """Bytes of the sequence accumulated so far."""
    start: int = 0
    """Stream offset of the first pending byte."""
    offset: int = 0
    """Stream offset of the next byte to be fed."""


class Lexer:
    """Split a byte stream in to text runs and escape sequences.

    The lexer never raises on bad input. A sequence that is cut short, or that
    contains a byte not permitted in its current state, is emitted as a
    `Malformed` token with exactly the bytes consumed for it.
    """

    def __init__(self) -> None:
        self._state: LexerState = "ground"
        self._pending = bytearray()
        self._start = 0
        self._offset = 0

    @property
    def position(self) -> ParserPosition:
        """The current (resumable) position."""
        return ParserPosition(
            self._state, bytes(self._pending), self._start, self._offset
        )

    def restore(self, position: ParserPosition) -> None:
        """Resume from a position previously returned by `position`.

        Args:
            position: A parser position.
        """
        self._state = position.state
        self._pending = bytearray(position.pending)
        self._start = position.start
        self._offset = position.offset

    def reset(self) -> None:
        """Return to the start of a new stream."""
        self.restore(ParserPosition())

    def tokenize(self, data: bytes) -> list[Token]:
        """Tokenize a complete stream.

        Args:
            data: All the bytes of the stream.

        Returns:
            A list of tokens.
        """
        tokens = list(self.feed(data))
        tokens.extend(self.finish())
        return tokens

    def feed(self, data: bytes) -> Iterator[Token]:
        """Feed a chunk of the stream.

        Args:
            data: Bytes to lex.

        Yields:
            Tokens completed by this chunk.
        """
        data = bytes(data)
        base = self._offset
        position = 0
        end = len(data)
        while position < end:
            if self._state == "ground":
                escape = data.find(b"\x1b", position)
                if escape == -1:
                    escape = end
                if escape > position:
                    yield TextRun(data[position:escape], base + position)
                if escape == end:
                    break
                self._begin(base + escape)
                position = escape + 1
                continue

            token, consumed = self._step(data[position], base + position)
            if token is not None:
                yield token
            if consumed:
                position += 1
        self._offset = base + end

    def finish(self) -> Iterator[Token]:
        """Signal the end of the stream.

        Yields:
            A `Malformed` token if the stream ended inside a sequence.
        """
        if self._state != "ground":
            yield self._malformed(f"unterminated sequence ({self._state})")

    def _begin(self, offset: int) -> None:
        self._state = "escape"
        self._pending = bytearray(b"\x1b")
        self._start = offset

    def _malformed(self, reason: str) -> Malformed:
        token = Malformed(bytes(self._pending), reason, self._start)
        self._state = "ground"
        self._pending = bytearray()
        return token

    def _complete(self, kind: EscapeKind) -> Escape:
        pending = bytes(self._pending)
        match kind:
            case "escape":
                token = Escape(kind, b"", pending[1:-1], pending[-1:], self._start)
            case "csi":
                body = pending[2:-1]
                split = 0
                while split < len(body) and body[split] in PARAMETER_BYTES:
                    split += 1
                token = Escape(
                    kind, body[:split], body[split:], pending[-1:], self._start
                )
            case _:
                terminator_size = 2 if pending.endswith(STRING_TERMINATOR) else 1
                token = Escape(
                    kind,
                    pending[2:-terminator_size],
                    b"",
                    pending[-terminator_size:],
                    self._start,
                )
        self._state = "ground"
        self._pending = bytearray()
        return token

    def _step(self, byte: int, offset: int) -> tuple[Token | None, bool]:
        """Advance the state machine by a single byte.

        Args:
            byte: The byte.
            offset: Stream offset of the byte.

        Returns:
            A completed token (or `None`), and a flag that is `False` if the byte
            must be processed again in the new state.
        """
        state = self._state
        pending = self._pending

        if state not in STRING_STATES:
            if byte == ESC:
                token = self._malformed(f"ESC inside sequence ({state})")
                self._begin(offset)
                return token, True

        match state:
            case "escape":
                if (next_state := INTRODUCER_STATES.get(byte)) is not None:
                    pending.append(byte)
                    self._state = next_state
                    return None, True
                if byte in INTERMEDIATE_BYTES:
                    pending.append(byte)
                    self._state = "escape_intermediate"
                    return None, True
                if byte in ESCAPE_FINAL_BYTES:
                    pending.append(byte)
                    return self._complete("escape"), True
                return self._malformed("invalid byte after ESC"), False

            case "escape_intermediate":
                if byte in INTERMEDIATE_BYTES:
                    pending.append(byte)
                    return None, True
                if byte in ESCAPE_FINAL_BYTES:
                    pending.append(byte)
                    return self._complete("escape"), True
                return self._malformed("invalid byte in escape sequence"), False

            case "csi_entry" | "csi_param":
                if byte in PARAMETER_BYTES:
                    pending.append(byte)
                    self._state = "csi_param"
                    return None, True
                if byte in INTERMEDIATE_BYTES:
                    pending.append(byte)
                    self._state = "csi_intermediate"
                    return None, True
                if byte in CSI_FINAL_BYTES:
                    pending.append(byte)
                    return self._complete("csi"), True
                return self._malformed("invalid byte in control sequence"), False

            case "csi_intermediate":
                if byte in INTERMEDIATE_BYTES:
                    pending.append(byte)
                    return None, True
                if byte in CSI_FINAL_BYTES:
                    pending.append(byte)
                    return self._complete("csi"), True
                return self._malformed("invalid byte in control sequence"), False

            case "string_escape":
                kind = STRING_KINDS[pending[1]]
                if byte == BACKSLASH:
                    pending.append(byte)
                    return self._complete(kind), True
                # ESC not followed by ST ends the string, and starts a new escape
                del pending[-1]
                token = self._malformed(f"{kind} string interrupted by ESC")
                self._begin(offset - 1)
                return token, False

            case _:
                # osc_string and the passthrough states
                kind = STRING_KINDS[pending[1]]
                if byte == ESC:
                    pending.append(byte)
                    self._state = "string_escape"
                    return None, True
                if byte == BEL and kind == "osc":
                    pending.append(byte)
                    return self._complete(kind), True
                if byte == CAN or byte == SUB:
                    return self._malformed(f"{kind} string cancelled"), False
                pending.append(byte)
                return None, True


def tokenize(data: bytes) -> list[Token]:
    """Tokenize a complete stream.

    Args:
        data: Bytes to lex.

    Returns:
        List of tokens covering every byte of `data`.
    """
    return Lexer().tokenize(data)


def iter_tokens(chunks: Iterable[bytes]) -> Iterator[Token]:
    """Lazily tokenize a stream supplied in chunks.

    Args:
        chunks: Iterable of byte chunks.

    Yields:
        Tokens.
    """
    lexer = Lexer()
    for chunk in chunks:
        yield from lexer.feed(chunk)
    yield from lexer.finish()
