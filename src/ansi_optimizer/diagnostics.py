from __future__ import annotations

import logging
from collections import Counter
from typing import Callable, Literal, NamedTuple

import rich.repr


log = logging.getLogger(__name__)


type DiagnosticKind = Literal["malformed_sequence", "unrecognized_sequence"]


@rich.repr.auto
class Diagnostic(NamedTuple):
    """Something in the stream was passed through without being understood.

    Diagnostics never change the output; they exist purely for observability.
    """

    kind: DiagnosticKind
    data: bytes
    """The bytes concerned."""
    offset: int = 0
    """Stream offset of the sequence."""
    reason: str = ""

    def __rich_repr__(self) -> rich.repr.Result:
        yield self.kind
        yield self.data
        yield "offset", self.offset, 0
        yield "reason", self.reason, ""

    def __str__(self) -> str:
        description = self.kind.replace("_", " ")
        if self.reason:
            description = f"{description}, {self.reason}"
        return f"{description} at offset {self.offset}: {self.data!r}"


type DiagnosticsHandler = Callable[[Diagnostic], None]


def log_diagnostic(diagnostic: Diagnostic) -> None:
    """Default diagnostics handler, which writes to the log.

    Args:
        diagnostic: The diagnostic.
    """
    if diagnostic.kind == "malformed_sequence":
        log.info("%s", diagnostic)
    else:
        log.debug("%s", diagnostic)


class DiagnosticsCounter:
    """A diagnostics handler that counts diagnostics by kind, and forwards them."""

    def __init__(self, forward: DiagnosticsHandler | None = log_diagnostic) -> None:
        self.counts: Counter[DiagnosticKind] = Counter()
        self._forward = forward

    def __call__(self, diagnostic: Diagnostic) -> None:
        self.counts[diagnostic.kind] += 1
        if self._forward is not None:
            self._forward(diagnostic)
