"""
Shared fixtures, a corpus of generated streams, and a reference terminal model.
"""
import random
from typing import NamedTuple

import pytest

from ansi_optimizer.diagnostics import Diagnostic
from ansi_optimizer.events import (
    ATTRIBUTE_NAMES,
    DEFAULT_ATTRIBUTES,
    EraseInDisplay,
    EraseInLine,
    MoveCursor,
    Opaque,
    ResetAllAttributes,
    RestoreCursor,
    SaveCursor,
    SetAttributes,
    SetScrollRegion,
    Text,
)
from ansi_optimizer.lexer import tokenize
from ansi_optimizer.normalizer import Normalizer
from ansi_optimizer.state import ERASE_COVERS

FRAGMENTS = [
    # Text
    b"hello",
    b" ",
    b"\r\n",
    b"\xc3\xa9",
    b"\xc3",
    b"\xe2\x94",
    b"\x07",
    # SGR
    b"\x1b[m",
    b"\x1b[0m",
    b"\x1b[1m",
    b"\x1b[2m",
    b"\x1b[22m",
    b"\x1b[1;2m",
    b"\x1b[3;4m",
    b"\x1b[23m",
    b"\x1b[5m",
    b"\x1b[6m",
    b"\x1b[25m",
    b"\x1b[7m",
    b"\x1b[27m",
    b"\x1b[31m",
    b"\x1b[32m",
    b"\x1b[39m",
    b"\x1b[41m",
    b"\x1b[49m",
    b"\x1b[91m",
    b"\x1b[38;5;196m",
    b"\x1b[48;2;10;20;30m",
    b"\x1b[0;1;31m",
    b"\x1b[53m",
    b"\x1b[4:3m",
    b"\x1b[58;5;3m",
    b"\x1b[38;5m",
    b"\x1b[1;38;2;1m",
    # Cursor
    b"\x1b[A",
    b"\x1b[2A",
    b"\x1b[B",
    b"\x1b[3B",
    b"\x1b[C",
    b"\x1b[4D",
    b"\x1b[H",
    b"\x1b[5;10H",
    b"\x1b[2;3f",
    b"\x1b[7G",
    b"\x1b[12d",
    # Erase
    b"\x1b[K",
    b"\x1b[1K",
    b"\x1b[2K",
    b"\x1b[J",
    b"\x1b[2J",
    b"\x1b[3J",
    # Save, restore and scroll region
    b"\x1b7",
    b"\x1b8",
    b"\x1b[s",
    b"\x1b[u",
    b"\x1b[r",
    b"\x1b[3;20r",
    b"\x1b[5;2r",
    # Opaque
    b"\x1b]0;title\x07",
    b"\x1b]8;;http://example.org\x1b\\",
    b"\x1bPq#0\x1b\\",
    b"\x1b[?25l",
    b"\x1b[?1049h",
    b"\x1b[2X",
    b"\x1b(B",
    b"\x1bc",
    # Malformed
    b"\x1b[1",
    b"\x1b",
    b"\x1b]unterminated",
    b"\x1b[1\x7f",
    b"\x1b[\x01",
]


def build_corpus(count: int = 300, seed: int = 2024) -> list[bytes]:
    """Build a fixed corpus of streams from random fragments."""
    rng = random.Random(seed)
    corpus = []
    for _ in range(count):
        size = rng.randint(1, 24)
        corpus.append(b"".join(rng.choice(FRAGMENTS) for _ in range(size)))
    return corpus


CORPUS = build_corpus()


class TerminalModel(NamedTuple):
    """The outcome of replaying a stream."""

    effects: list[tuple]
    """Visible effects, in order."""
    state: tuple
    """Final state."""


def simulate(data: bytes) -> TerminalModel:
    """Replay a stream through a reference model of the terminal.

    The model follows the same semantic rules as the optimizer, but shares
    none of its logic. The cursor is held as (anchor, value) per axis. The
    anchor is "abs" for a known position, or marks the text or opaque sequence
    that last moved the cursor by an unknown amount. Anything an opaque sequence
    may change is replaced by a marker unique to that sequence.
    """
    normalizer = Normalizer(diagnostics=None)
    attributes = dict(DEFAULT_ATTRIBUTES)
    row = col = ("start", 0)
    region = SetScrollRegion()
    saved = None
    effects: list[tuple] = []
    text_bytes = 0
    opaque_count = 0

    def snapshot():
        return tuple(attributes[name] for name in ATTRIBUTE_NAMES)

    def add_erase(erase):
        if effects and effects[-1][0] == "erase":
            _, previous, previous_attributes, previous_cursor = effects[-1]
            if previous_attributes == snapshot():
                if previous == EraseInDisplay(2):
                    return
                if previous_cursor == (row, col) and erase in ERASE_COVERS.get(
                    previous, ()
                ):
                    return
        effects.append(("erase", erase, snapshot(), (row, col)))

    for token in tokenize(data):
        for event in normalizer.normalize(token).events:
            match event:
                case Text(text):
                    anchor = (("text", text_bytes), 0)
                    if (
                        effects
                        and effects[-1][0] == "text"
                        and effects[-1][2] == snapshot()
                        and (row, col) == (anchor, anchor)
                    ):
                        _, previous_text, _, cursor = effects[-1]
                        effects[-1] = ("text", previous_text + text, snapshot(), cursor)
                    else:
                        effects.append(("text", text, snapshot(), (row, col)))
                    text_bytes += len(text)
                    row = col = (("text", text_bytes), 0)
                case SetAttributes():
                    attributes.update(event.as_dict())
                case ResetAllAttributes():
                    attributes.update(DEFAULT_ATTRIBUTES)
                case MoveCursor("relative", _, delta_row, delta_col):
                    row = (row[0], row[1] + delta_row)
                    col = (col[0], col[1] + delta_col)
                case MoveCursor("absolute", axis, target_row, target_col):
                    if axis in ("row", "both"):
                        row = ("abs", target_row)
                    if axis in ("col", "both"):
                        col = ("abs", target_col)
                case SaveCursor():
                    saved = (row, col, snapshot())
                case RestoreCursor():
                    match saved:
                        case None:
                            row = col = ("abs", 1)
                            attributes.update(DEFAULT_ATTRIBUTES)
                        case (row, col, restored):
                            attributes.update(zip(ATTRIBUTE_NAMES, restored))
                        case _:
                            marker = ("restore", saved)
                            row = col = (marker, 0)
                            attributes.update({name: marker for name in ATTRIBUTE_NAMES})
                case EraseInLine() | EraseInDisplay():
                    add_erase(event)
                case SetScrollRegion():
                    region = event
                    row = col = ("abs", 1)
                case Opaque(opaque, "sgr"):
                    opaque_count += 1
                    marker = ("sgr", opaque_count, opaque)
                    attributes.update({name: marker for name in ATTRIBUTE_NAMES})
                case Opaque(opaque):
                    opaque_count += 1
                    effects.append(("opaque", opaque, snapshot(), (row, col)))
                    marker = ("opaque", opaque_count)
                    attributes.update({name: marker for name in ATTRIBUTE_NAMES})
                    row = col = (marker, 0)
                    region = marker
                    saved = marker

    return TerminalModel(effects, (snapshot(), row, col, region, saved))


class DiagnosticsCollector:
    """A diagnostics handler that records what it receives."""

    def __init__(self):
        self.diagnostics: list[Diagnostic] = []

    def __call__(self, diagnostic: Diagnostic) -> None:
        self.diagnostics.append(diagnostic)

    @property
    def kinds(self) -> list[str]:
        return [diagnostic.kind for diagnostic in self.diagnostics]


@pytest.fixture
def diagnostics():
    """Fixture providing a diagnostics collector."""
    return DiagnosticsCollector()


@pytest.fixture
def settings_file(tmp_path):
    """Fixture providing a path for a settings file that doesn't exist yet."""
    return tmp_path / "settings.json"
