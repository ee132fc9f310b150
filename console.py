"""Byte I/O for the `,` and `.` commands."""

from __future__ import annotations
import abc
import io
import os
import sys
from typing import BinaryIO, IO, List, Optional

# Ctrl-D typed at a non-canonical terminal arrives as a plain byte.
EOT = 4


class Console(abc.ABC):
    """One byte in, one byte out.

    ``read_one`` returns ``None`` for end-of-input. Implementations echo
    every byte they hand back, so the evaluator never echoes on its own.
    """

    @abc.abstractmethod
    def read_one(self) -> Optional[int]:
        ...

    @abc.abstractmethod
    def write(self, value: int) -> None:
        ...


class TerminalConsole(Console):
    """Reads raw bytes from stdin and writes raw bytes to stdout.

    On a terminal, canonical mode and echo are switched off for the length
    of a single read and restored afterwards, so ``,`` sees each key press
    immediately and the echo comes from ``write``.
    """

    def __init__(self, stdin: Optional[BinaryIO] = None, stdout: Optional[IO[str]] = None) -> None:
        self.stdin = stdin if stdin is not None else getattr(sys.stdin, "buffer", sys.stdin)
        self.stdout = stdout if stdout is not None else sys.stdout

    def _fileno(self) -> Optional[int]:
        try:
            fd = self.stdin.fileno()
        except (AttributeError, OSError, ValueError):
            return None
        return fd if os.isatty(fd) else None

    def _read_byte(self) -> bytes:
        fd = self._fileno()
        if fd is None:
            return self.stdin.read(1)
        import termios

        old_attr = termios.tcgetattr(fd)
        new_attr = list(old_attr)
        new_attr[3] = new_attr[3] & ~(termios.ICANON | termios.ECHO)
        new_attr[6] = list(old_attr[6])
        new_attr[6][termios.VMIN] = 1
        new_attr[6][termios.VTIME] = 0
        termios.tcsetattr(fd, termios.TCSANOW, new_attr)
        try:
            return os.read(fd, 1)
        finally:
            termios.tcsetattr(fd, termios.TCSANOW, old_attr)

    def read_one(self) -> Optional[int]:
        chunk = self._read_byte()
        if not chunk or chunk[0] == EOT:
            return None
        value = chunk[0]
        self.write(value)
        return value

    def write(self, value: int) -> None:
        out = self.stdout
        raw = getattr(out, "buffer", None)
        if raw is None:
            out.write(chr(value))
        else:
            # Flush pending text (prompts, banners) so byte order is preserved.
            out.flush()
            raw.write(bytes([value & 0xFF]))
            raw.flush()
        out.flush()


class StreamConsole(Console):
    """In-memory console: reads from a byte string, collects written bytes."""

    def __init__(self, data: bytes = b"", *, echo: bool = True) -> None:
        self._input = io.BytesIO(data)
        self.output = bytearray()
        self.echo = echo
        self.reads: List[Optional[int]] = []

    def read_one(self) -> Optional[int]:
        chunk = self._input.read(1)
        value: Optional[int] = None
        if chunk and chunk[0] != EOT:
            value = chunk[0]
            if self.echo:
                self.write(value)
        self.reads.append(value)
        return value

    def write(self, value: int) -> None:
        self.output.append(value & 0xFF)

    def text(self) -> str:
        return self.output.decode("latin-1")
