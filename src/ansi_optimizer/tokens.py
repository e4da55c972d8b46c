from __future__ import annotations

from typing import Literal, Mapping, NamedTuple

import rich.repr


type EscapeKind = Literal["escape", "csi", "osc", "dcs", "apc", "pm", "sos"]

ESC = b"\x1b"

INTRODUCERS: Mapping[EscapeKind, bytes] = {
    "escape": b"",
    "csi": b"[",
    "osc": b"]",
    "dcs": b"P",
    "apc": b"_",
    "pm": b"^",
    "sos": b"X",
}
"""The byte following ESC for each kind of sequence."""


@rich.repr.auto
class TextRun(NamedTuple):
    """Literal bytes copied from the ground state."""

    data: bytes
    offset: int = 0
    """Stream offset of the first byte."""

    def __rich_repr__(self) -> rich.repr.Result:
        yield self.data
        yield "offset", self.offset, 0

    @property
    def raw(self) -> bytes:
        return self.data


@rich.repr.auto
class Escape(NamedTuple):
    """A complete escape or control sequence.

    For string sequences (OSC, DCS, APC, PM, SOS) `parameters` holds the string
    payload and `final` holds the terminator (BEL or ESC \\).
    """

    kind: EscapeKind
    parameters: bytes = b""
    intermediates: bytes = b""
    final: bytes = b""
    offset: int = 0
    """Stream offset of the ESC byte."""

    def __rich_repr__(self) -> rich.repr.Result:
        yield self.kind
        yield "parameters", self.parameters, b""
        yield "intermediates", self.intermediates, b""
        yield "final", self.final, b""
        yield "offset", self.offset, 0

    @property
    def raw(self) -> bytes:
        """The exact bytes of the sequence."""
        return b"".join(
            (
                ESC,
                INTRODUCERS[self.kind],
                self.parameters,
                self.intermediates,
                self.final,
            )
        )


@rich.repr.auto
class Malformed(NamedTuple):
    """Bytes of a sequence that was cut short or contained an invalid byte."""

    data: bytes
    reason: str = ""
    offset: int = 0

    def __rich_repr__(self) -> rich.repr.Result:
        yield self.data
        yield "reason", self.reason, ""
        yield "offset", self.offset, 0

    @property
    def raw(self) -> bytes:
        return self.data


type Token = TextRun | Escape | Malformed
