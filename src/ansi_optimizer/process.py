"""Run a process in a pseudo-terminal, and optimize its output."""

from __future__ import annotations

import asyncio
import errno
import fcntl
import logging
import os
import pty
import struct
import termios
from time import monotonic
from typing import Callable, Sequence

from ansi_optimizer.optimizer import Optimizer

log = logging.getLogger(__name__)

type Sink = Callable[[bytes], object]


def resize_pty(fd: int, cols: int, rows: int) -> None:
    """Resize the pseudo-terminal"""
    # Pack the dimensions into the format expected by TIOCSWINSZ
    size = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, size)


async def read_buffered(
    reader: asyncio.StreamReader,
    buffer_size: int,
    max_buffer_duration: float,
) -> bytes:
    """Read data from a stream reader, with buffer logic to reduce the number of chunks.

    A larger chunk gives the optimizer longer runs of control sequences to work with.

    Args:
        reader: A reader instance.
        buffer_size: Maximum buffer size.
        max_buffer_duration: Maximum time in seconds to buffer data.

    Returns:
        Bytes read. Empty at the end of the stream.
    """
    try:
        data = await reader.read(buffer_size)
    except OSError as error:
        # Linux reports EIO from the pty once the child has closed its side
        if error.errno == errno.EIO:
            return b""
        raise
    if data:
        buffer_time = monotonic() + max_buffer_duration
        try:
            while len(data) < buffer_size and (time := monotonic()) < buffer_time:
                async with asyncio.timeout(buffer_time - time):
                    chunk = await reader.read(buffer_size - len(data))
                if not chunk:
                    break
                data += chunk
        except asyncio.TimeoutError:
            pass
        except OSError as error:
            if error.errno != errno.EIO:
                raise
    return data


class ProcessRunner:
    """Run a command in a pty, writing its optimized output to a sink.

    Args:
        command: Command and arguments.
        sink: Callable that receives optimized bytes.
        optimizer: Optimizer for the output.
        size: Terminal size (columns, rows).
        buffer_duration: Seconds to gather output before optimizing.
        buffer_size: Maximum bytes to gather.
    """

    def __init__(
        self,
        command: Sequence[str],
        sink: Sink,
        optimizer: Optimizer | None = None,
        size: tuple[int, int] = (80, 24),
        buffer_duration: float = 0.01,
        buffer_size: int = 1024 * 16,
    ) -> None:
        self.command = list(command)
        self.sink = sink
        self.optimizer = optimizer or Optimizer()
        self.size = size
        self.buffer_duration = buffer_duration
        self.buffer_size = buffer_size

    def __repr__(self) -> str:
        return f"ProcessRunner({self.command!r})"

    async def run(self) -> int:
        """Run the command to completion.

        Returns:
            The process return code.
        """
        master, slave = pty.openpty()
        cols, rows = self.size
        resize_pty(slave, cols, rows)

        flags = fcntl.fcntl(master, fcntl.F_GETFL)
        fcntl.fcntl(master, fcntl.F_SETFL, flags | os.O_NONBLOCK)

        log.debug("running %r in a %dx%d pty", self.command, cols, rows)
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=slave,
                stdout=slave,
                stderr=slave,
                start_new_session=True,
            )
        except OSError:
            os.close(master)
            raise
        finally:
            os.close(slave)

        reader = asyncio.StreamReader()
        protocol = asyncio.StreamReaderProtocol(reader)

        loop = asyncio.get_running_loop()
        transport, _ = await loop.connect_read_pipe(
            lambda: protocol, os.fdopen(master, "rb", 0)
        )

        optimizer = self.optimizer
        try:
            while data := await read_buffered(
                reader, self.buffer_size, self.buffer_duration
            ):
                if output := optimizer.feed(data):
                    self.sink(output)
        finally:
            transport.close()

        if output := optimizer.finish():
            self.sink(output)

        return_code = await process.wait()
        log.debug("%r exited with %d", self.command, return_code)
        return return_code


def run_command(
    command: Sequence[str],
    sink: Sink,
    optimizer: Optimizer | None = None,
    buffer_duration: float = 0.01,
) -> int:
    """Run a command in a pty until it exits.

    Args:
        command: Command and arguments.
        sink: Callable that receives optimized bytes.
        optimizer: Optimizer, or `None` for a default.
        buffer_duration: Seconds to gather output before optimizing.

    Returns:
        The process return code.
    """
    try:
        size = os.get_terminal_size()
    except OSError:
        size = os.terminal_size((80, 24))
    runner = ProcessRunner(
        command,
        sink,
        optimizer,
        size=(size.columns, size.lines),
        buffer_duration=buffer_duration,
    )
    return asyncio.run(runner.run())
