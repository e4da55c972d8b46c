"""
Tests for the semantic normalizer.
"""
import pytest

from ansi_optimizer.events import (
    Color,
    EraseInDisplay,
    EraseInLine,
    EventGroup,
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
from ansi_optimizer.normalizer import Normalizer, parse_parameters, parse_sgr


def normalize(data, diagnostics=None):
    """Normalize a stream, returning all the events."""
    normalizer = Normalizer(diagnostics)
    return [
        event
        for token in tokenize(data)
        for event in normalizer.normalize(token).events
    ]


class TestParseParameters:
    """Test parsing numeric parameters."""

    def test_empty(self):
        assert parse_parameters(b"") == []

    def test_defaults(self):
        """Test that empty parameters are zero."""
        assert parse_parameters(b";5;") == [0, 5, 0]

    def test_not_numeric(self):
        assert parse_parameters(b"?25") is None
        assert parse_parameters(b"1:2") is None

    def test_too_long(self):
        """Test that a value with too many digits isn't interpreted."""
        assert parse_parameters(b"999999999") == [999999999]
        assert parse_parameters(b"1000000000") is None
        assert parse_parameters(b"5;" + b"1" * 5000) is None


class TestSGR:
    """Test SGR normalization."""

    def test_reset(self):
        assert parse_sgr(b"") == (ResetAllAttributes(),)
        assert parse_sgr(b"0") == (ResetAllAttributes(),)

    def test_attributes_are_gathered(self):
        """Test that consecutive codes become one event, in order."""
        assert parse_sgr(b"1;4;31") == (
            SetAttributes(
                (
                    ("bold", True),
                    ("underline", True),
                    ("foreground", Color("ansi", 1)),
                )
            ),
        )

    def test_reset_in_the_middle(self):
        assert parse_sgr(b"1;0;3") == (
            SetAttributes((("bold", True),)),
            ResetAllAttributes(),
            SetAttributes((("italic", True),)),
        )

    def test_normal_intensity_clears_bold_and_dim(self):
        [event] = parse_sgr(b"22")
        assert event.as_dict() == {"bold": False, "dim": False}

    @pytest.mark.parametrize(
        "parameters,attribute,value",
        [
            (b"5", "blink", "slow"),
            (b"6", "blink", "rapid"),
            (b"25", "blink", False),
            (b"39", "foreground", None),
            (b"49", "background", None),
            (b"97", "foreground", Color("ansi", 15)),
            (b"100", "background", Color("ansi", 8)),
            (b"38;5;196", "foreground", Color("indexed", 196)),
            (b"48;2;1;2;3", "background", Color("rgb", (1, 2, 3))),
        ],
    )
    def test_values(self, parameters, attribute, value):
        """Test the values of individual codes."""
        [event] = parse_sgr(parameters)
        assert event.as_dict() == {attribute: value}

    def test_unknown_code(self):
        """Test that an unknown code is wrapped, and the rest still understood."""
        assert parse_sgr(b"1;53;4") == (
            SetAttributes((("bold", True),)),
            Opaque(b"53", "sgr"),
            SetAttributes((("underline", True),)),
        )

    def test_sub_parameters(self):
        """Test that a colon form is a single opaque parameter."""
        assert parse_sgr(b"4:3;1") == (
            Opaque(b"4:3", "sgr"),
            SetAttributes((("bold", True),)),
        )

    def test_underline_color(self):
        """Test that underline color keeps its arguments."""
        assert parse_sgr(b"58;5;3;1") == (
            Opaque(b"58;5;3", "sgr"),
            SetAttributes((("bold", True),)),
        )

    def test_bad_extended_color(self):
        """Test that the remainder after a bad extended color is kept together."""
        assert parse_sgr(b"1;38;5;300;4") == (
            SetAttributes((("bold", True),)),
            Opaque(b"38;5;300;4", "sgr"),
        )
        assert parse_sgr(b"38;2;1") == (Opaque(b"38;2;1", "sgr"),)

    def test_long_parameter(self):
        """Test that a parameter with too many digits is an unknown code."""
        long_parameter = b"1" * 5000
        assert parse_sgr(long_parameter + b";4") == (
            Opaque(long_parameter, "sgr"),
            SetAttributes((("underline", True),)),
        )
        assert parse_sgr(b"0000000001") == (Opaque(b"0000000001", "sgr"),)

    def test_private_sgr_is_opaque(self):
        assert normalize(b"\x1b[>4;2m") == [Opaque(b"\x1b[>4;2m")]


class TestCSI:
    """Test normalization of other control sequences."""

    @pytest.mark.parametrize(
        "data,event",
        [
            (b"\x1b[A", MoveCursor("relative", "row", -1, 0)),
            (b"\x1b[0A", MoveCursor("relative", "row", -1, 0)),
            (b"\x1b[3B", MoveCursor("relative", "row", 3, 0)),
            (b"\x1b[2C", MoveCursor("relative", "col", 0, 2)),
            (b"\x1b[D", MoveCursor("relative", "col", 0, -1)),
            (b"\x1b[H", MoveCursor("absolute", "both", 1, 1)),
            (b"\x1b[5H", MoveCursor("absolute", "both", 5, 1)),
            (b"\x1b[;7H", MoveCursor("absolute", "both", 1, 7)),
            (b"\x1b[2;3f", MoveCursor("absolute", "both", 2, 3)),
            (b"\x1b[9G", MoveCursor("absolute", "col", 0, 9)),
            (b"\x1b[4d", MoveCursor("absolute", "row", 4, 0)),
            (b"\x1b[J", EraseInDisplay(0)),
            (b"\x1b[2J", EraseInDisplay(2)),
            (b"\x1b[K", EraseInLine(0)),
            (b"\x1b[1K", EraseInLine(1)),
            (b"\x1b[r", SetScrollRegion()),
            (b"\x1b[2;10r", SetScrollRegion(2, 10)),
            (b"\x1b[s", SaveCursor("sco")),
            (b"\x1b[u", RestoreCursor("sco")),
            (b"\x1b7", SaveCursor("dec")),
            (b"\x1b8", RestoreCursor("dec")),
        ],
    )
    def test_recognized(self, data, event):
        assert normalize(data) == [event]

    @pytest.mark.parametrize(
        "data",
        [
            b"\x1b[3J",
            b"\x1b[1;2A",
            b"\x1b[5;2r",
            b"\x1b[?25l",
            b"\x1b[2 q",
            b"\x1b[1s",
            b"\x1b[2X",
            b"\x1b]0;title\x07",
            b"\x1bc",
            b"\x1b[" + b"1" * 5000 + b"A",
            b"\x1b[1000000000;1H",
        ],
    )
    def test_unrecognized(self, data, diagnostics):
        """Test that anything else is opaque, and reported."""
        assert normalize(data, diagnostics) == [Opaque(data)]
        assert diagnostics.kinds == ["unrecognized_sequence"]


class TestNormalizer:
    """Test the normalizer class."""

    def test_group_has_raw_bytes(self):
        normalizer = Normalizer(None)
        [token] = tokenize(b"\x1b[1;31m")
        group = normalizer.normalize(token)
        assert group.raw == b"\x1b[1;31m"
        assert not group.is_barrier

    def test_text_is_a_barrier(self):
        normalizer = Normalizer(None)
        [token] = tokenize(b"hi")
        assert normalizer.normalize(token) == EventGroup(b"hi", (Text(b"hi"),))
        assert normalizer.normalize(token).is_barrier

    def test_malformed(self, diagnostics):
        """Test that a malformed sequence is preserved, and reported."""
        assert normalize(b"\x1b]0;title", diagnostics) == [
            Opaque(b"\x1b]0;title", "malformed")
        ]
        assert diagnostics.kinds == ["malformed_sequence"]
        assert diagnostics.diagnostics[0].offset == 0

    def test_unknown_sgr_parameter_is_reported(self, diagnostics):
        normalize(b"\x1b[1;53m", diagnostics)
        assert diagnostics.kinds == ["unrecognized_sequence"]
        assert "53" in diagnostics.diagnostics[0].reason

    def test_normalize_all(self):
        normalizer = Normalizer(None)
        groups = normalizer.normalize_all(tokenize(b"a\x1b[Kb"))
        assert b"".join(group.raw for group in groups) == b"a\x1b[Kb"
        assert [group.is_barrier for group in groups] == [True, False, True]

    def test_default_diagnostics_log(self, caplog):
        """Test that by default diagnostics go to the log."""
        with caplog.at_level("DEBUG", logger="ansi_optimizer"):
            Normalizer().normalize(tokenize(b"\x1b[?25l")[0])
        assert "unrecognized sequence" in caplog.text
