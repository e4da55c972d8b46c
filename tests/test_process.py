"""
Tests for running processes in a pseudo-terminal.
"""
import asyncio
import errno
import sys

import pytest

from ansi_optimizer.optimizer import Optimizer
from ansi_optimizer.process import ProcessRunner, read_buffered, run_command

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="requires a pty")


def read_all(*chunks, exception=None):
    """Feed chunks to a stream reader, and read them back with buffering."""

    async def read():
        reader = asyncio.StreamReader()
        for chunk in chunks:
            reader.feed_data(chunk)
        if exception is None:
            reader.feed_eof()
        else:
            reader.set_exception(exception)
        results = []
        while data := await read_buffered(reader, 8, 0.01):
            results.append(data)
        return results

    return asyncio.run(read())


class TestReadBuffered:
    """Test gathering output in to larger chunks."""

    def test_gathers_chunks(self):
        assert read_all(b"ab", b"cd") == [b"abcd"]

    def test_buffer_size(self):
        assert read_all(b"0123456789") == [b"01234567", b"89"]

    def test_eof(self):
        assert read_all() == []

    def test_eio_is_end_of_stream(self):
        """Test that the error reported when a pty closes ends the stream."""
        assert read_all(exception=OSError(errno.EIO, "I/O error")) == []

    def test_other_errors_propagate(self):
        with pytest.raises(OSError):
            read_all(exception=OSError(errno.EBADF, "Bad file descriptor"))


class TestProcessRunner:
    """Test running a process."""

    def test_run(self):
        output = bytearray()
        runner = ProcessRunner(
            ["printf", r"\033[31m\033[32mgreen"], output.extend, Optimizer()
        )
        assert asyncio.run(runner.run()) == 0
        assert bytes(output) == b"\x1b[32mgreen"

    def test_terminal_size(self):
        """Test that the process sees the requested terminal size."""
        output = bytearray()
        runner = ProcessRunner(["stty", "size"], output.extend, size=(100, 30))
        asyncio.run(runner.run())
        assert bytes(output).strip() == b"30 100"

    def test_run_command(self):
        output = bytearray()
        assert run_command(["sh", "-c", "exit 2"], output.extend) == 2
        assert output == b""

    def test_repr(self):
        assert repr(ProcessRunner(["ls", "-l"], print)) == "ProcessRunner(['ls', '-l'])"
