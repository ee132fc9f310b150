from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Optional


class BFError(Exception):
    """Base class for interpreter errors."""

    label = "Error"

    def __init__(self, message: str, *, offset: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.offset = offset
        self.step_index: Optional[int] = None


class BFParseError(BFError):
    """Raised when the bracket structure of the source is broken."""

    label = "ParsingError"


class UnmatchedOpenBracket(BFParseError):
    def __init__(self, offset: Optional[int] = None) -> None:
        super().__init__("can't find closing brace!", offset=offset)


class UnmatchedCloseBracket(BFParseError):
    def __init__(self, offset: Optional[int] = None) -> None:
        super().__init__("found unmatched brace!", offset=offset)


class BFRuntimeError(BFError):
    """Raised for faults while executing commands."""

    # Core faults share one category with parse errors in the diagnostics.
    label = "ParsingError"


class BFOptionsError(BFError):
    """Raised for malformed command-line invocations."""

    label = "OptionsError"


SYMBOLS = {
    ">": "MOVE_RIGHT",
    "<": "MOVE_LEFT",
    "+": "INC",
    "-": "DEC",
    ".": "OUTPUT",
    ",": "INPUT",
    "[": "LOOP_OPEN",
    "]": "LOOP_CLOSE",
}


@dataclass(frozen=True)
class SourceWindow:
    """Read-only view of the command string starting at ``start``.

    All windows of one run share the same ``text``; moving the window only
    changes the offset.
    """

    text: str
    start: int = 0

    def at(self, start: int) -> "SourceWindow":
        return SourceWindow(self.text, start)

    def __len__(self) -> int:
        return max(len(self.text) - self.start, 0)


def find_closing_bracket(text: str, open_index: int) -> int:
    # Counting starts on the '[' itself, so depth is 1 after the first char.
    depth = 0
    n = len(text)
    for j in range(open_index, n):
        ch = text[j]
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
        if depth == 0:
            return j
    raise UnmatchedOpenBracket(open_index)


def assemble_source(lines: Iterable[str]) -> str:
    """Join source lines the way file mode expects: every newline dropped."""
    return "".join(line.replace("\n", "") for line in lines)
