"""The complete pipeline, from bytes to optimized bytes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, overload

import rich.repr

from ansi_optimizer.diagnostics import DiagnosticsHandler, log_diagnostic
from ansi_optimizer.events import SemanticEvent
from ansi_optimizer.lexer import Lexer
from ansi_optimizer.normalizer import Normalizer
from ansi_optimizer.rewriter import Rewriter, RewriterOptions, RewriterStats
from ansi_optimizer.tokens import Token


@rich.repr.auto
@dataclass
class OptimizerStats:
    """Totals for a stream."""

    bytes_in: int = 0
    bytes_out: int = 0
    tokens: int = 0
    rewriter: RewriterStats = field(default_factory=RewriterStats)

    @property
    def saved(self) -> int:
        """Bytes removed from the stream."""
        return self.bytes_in - self.bytes_out

    @property
    def ratio(self) -> float:
        """Output size as a fraction of input size."""
        return self.bytes_out / self.bytes_in if self.bytes_in else 1.0


class Optimizer:
    """Optimize a stream of terminal output.

    ```python
    optimizer = Optimizer()
    optimizer.update(b"\\x1b[33;41m")
    optimizer.update(b"\\x1b[39m")
    assert optimizer.getvalue() == b"\\x1b[41m"
    ```

    Use `feed` and `finish` to process a stream incrementally, or `update` and
    `getvalue` to accumulate the output.

    Args:
        options: Rewriter options.
        diagnostics: Callable notified of sequences passed through verbatim.
    """

    def __init__(
        self,
        options: RewriterOptions | None = None,
        diagnostics: DiagnosticsHandler | None = log_diagnostic,
    ) -> None:
        self.options = options or RewriterOptions()
        self.diagnostics = diagnostics
        self._lexer = Lexer()
        self._normalizer = Normalizer(diagnostics)
        self._rewriter = Rewriter(self.options)
        self._output = bytearray()
        self._stats = OptimizerStats(rewriter=self._rewriter.stats)

    def __rich_repr__(self) -> rich.repr.Result:
        yield "options", self.options
        yield "stats", self._stats

    @property
    def stats(self) -> OptimizerStats:
        """Statistics for the stream so far."""
        return self._stats

    def reset(self) -> None:
        """Discard all state, and start a new stream."""
        self._lexer.reset()
        self._rewriter.reset()
        self._output.clear()
        self._stats = OptimizerStats(rewriter=self._rewriter.stats)

    def _process(self, tokens: Iterable[Token]) -> bytes:
        normalize = self._normalizer.normalize
        rewriter = self._rewriter
        events: list[SemanticEvent] = []
        for token in tokens:
            self._stats.tokens += 1
            events.extend(rewriter.feed(normalize(token)))
        return self._encode(events)

    def _encode(self, events: list[SemanticEvent]) -> bytes:
        output = self._rewriter.serializer.encode_all(events)
        self._stats.bytes_out += len(output)
        return output

    def feed(self, data: bytes) -> bytes:
        """Feed a chunk of the stream.

        A pending run of control sequences is held back until it is known to
        be complete, so the output may lag behind the input.

        Args:
            data: Bytes of any size.

        Returns:
            Optimized bytes ready to be written.
        """
        self._stats.bytes_in += len(data)
        return self._process(self._lexer.feed(data))

    def finish(self) -> bytes:
        """Signal the end of the stream, and flush anything held back.

        Returns:
            Remaining optimized bytes.
        """
        output = self._process(self._lexer.finish())
        return output + self._encode(list(self._rewriter.finish()))

    def update(self, data: bytes | str) -> None:
        """Add to the stream, accumulating output for `getvalue`.

        Args:
            data: Bytes, or a string which will be UTF-8 encoded.
        """
        if isinstance(data, str):
            data = data.encode("utf-8", "surrogateescape")
        self._output.extend(self.feed(data))

    def getvalue(self) -> bytes:
        """Get the optimized output of everything passed to `update`.

        This ends the stream. Further updates start a new run, but keep the
        terminal state.

        Returns:
            Optimized bytes.
        """
        self._output.extend(self.finish())
        return bytes(self._output)

    def __str__(self) -> str:
        return self.getvalue().decode("utf-8", "surrogateescape")


@overload
def optimize(data: bytes, options: RewriterOptions | None = None) -> bytes: ...


@overload
def optimize(data: str, options: RewriterOptions | None = None) -> str: ...


def optimize(
    data: bytes | str, options: RewriterOptions | None = None
) -> bytes | str:
    """Optimize a complete stream.

    Args:
        data: Bytes or string containing escape sequences.
        options: Rewriter options.

    Returns:
        Optimized output, of the same type as `data`.
    """
    optimizer = Optimizer(options)
    if isinstance(data, str):
        encoded = data.encode("utf-8", "surrogateescape")
        output = optimizer.feed(encoded) + optimizer.finish()
        return output.decode("utf-8", "surrogateescape")
    return optimizer.feed(data) + optimizer.finish()


def optimize_chunks(
    chunks: Iterable[bytes],
    options: RewriterOptions | None = None,
    diagnostics: DiagnosticsHandler | None = log_diagnostic,
) -> Iterator[bytes]:
    """Lazily optimize a stream supplied in chunks.

    Args:
        chunks: Iterable of bytes.
        options: Rewriter options.
        diagnostics: Diagnostics handler.

    Yields:
        Non-empty chunks of optimized output.
    """
    optimizer = Optimizer(options, diagnostics)
    for chunk in chunks:
        if output := optimizer.feed(chunk):
            yield output
    if output := optimizer.finish():
        yield output
