from __future__ import annotations
import json
import sys
from typing import Any, Callable, Dict, List, Optional

from console import Console, TerminalConsole
from hooks import HookRegistry, StepContext
from lexer import (
    SYMBOLS,
    BFError,
    BFRuntimeError,
    SourceWindow,
    UnmatchedCloseBracket,
    UnmatchedOpenBracket,
    find_closing_bracket,
)
from tape import DEFAULT_CAPACITY, Tape, TapeBoundsExceeded


# Each open loop costs one Python frame of _execute; stay well below the
# interpreter's own recursion limit.
DEFAULT_MAX_DEPTH = 512


class NestingTooDeep(BFRuntimeError):
    def __init__(self, limit: int, *, offset: Optional[int] = None) -> None:
        super().__init__(f"loop nesting deeper than {limit}!", offset=offset)
        self.limit = limit


class StepLogger:
    """Counts executed commands and remembers the most recent one.

    The full history is kept only when ``keep_history`` is set (trace mode);
    long-running programs would otherwise grow it without bound.
    """

    def __init__(self, keep_history: bool) -> None:
        self.keep_history = keep_history
        self.entries: List[StepContext] = []
        self.count = 0
        self.last: Optional[StepContext] = None

    def record(self, entry: StepContext) -> StepContext:
        if self.keep_history:
            self.entries.append(entry)
        self.last = entry
        self.count += 1
        return entry


class Tracer:
    """Writes the debug trace, one line per command, to ``sink``."""

    def __init__(self, sink: Callable[[str], None]) -> None:
        self.sink = sink

    def install(self, hooks: HookRegistry) -> None:
        hooks.on_event("command", self.on_command)
        hooks.on_event("loop_check", self.on_loop_check)
        hooks.on_event("loop_exit", self.on_loop_exit)
        hooks.on_event("input", self.on_input)

    def _line(self, level: int, text: str) -> None:
        self.sink(" " * (level * 2) + text)

    def on_command(self, interpreter: "Interpreter", ctx: StepContext) -> None:
        tape = interpreter.tape
        level = ctx.depth + 1
        cmd = ctx.command
        if cmd == ">":
            self._line(level, f"> Move pointer right: {ctx.cursor + 1} [{_cell(tape.peek_relative(1))}]")
        elif cmd == "<":
            self._line(level, f"< Move pointer left: {ctx.cursor - 1} [{_cell(tape.peek_relative(-1))}]")
        elif cmd == "+":
            self._line(level, f"+ increment pos: {ctx.cursor} [{(ctx.cell + 1) & 0xFF}]")
        elif cmd == "-":
            self._line(level, f"- decrement pos: {ctx.cursor} [{(ctx.cell - 1) & 0xFF}]")
        elif cmd == ".":
            self._line(level, f". output value of: {ctx.cursor} [{ctx.cell}] => {_printable(ctx.cell)}")

    def on_loop_check(self, interpreter: "Interpreter", ctx: StepContext) -> None:
        # ctx.depth is already the depth of the body about to run.
        self._line(ctx.depth, f"[ while item {ctx.cursor} not '0' [{ctx.cell}]:")

    def on_loop_exit(self, interpreter: "Interpreter", ctx: StepContext) -> None:
        self._line(ctx.depth + 1, f"[ item {ctx.cursor} is '0' [{ctx.cell}]")

    def on_input(self, interpreter: "Interpreter", ctx: StepContext, value: Optional[int]) -> None:
        if value is None:
            self._line(ctx.depth + 1, f", read EOF in: {ctx.cursor} [{ctx.cell}]")
        else:
            self._line(ctx.depth + 1, f", read input in: {ctx.cursor} [{value}]")


def _cell(value: Optional[int]) -> str:
    return "-" if value is None else str(value)


def _printable(value: int) -> str:
    if 32 <= value < 127:
        return chr(value)
    return f"\\x{value:02x}"


def _stderr_line(text: str) -> None:
    print(text, file=sys.stderr, flush=True)


class Interpreter:
    def __init__(
        self,
        *,
        tape: Optional[Tape] = None,
        capacity: int = DEFAULT_CAPACITY,
        console: Optional[Console] = None,
        trace: bool = False,
        trace_sink: Optional[Callable[[str], None]] = None,
        hooks: Optional[HookRegistry] = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ) -> None:
        self.tape = tape if tape is not None else Tape(capacity)
        self.console = console if console is not None else TerminalConsole()
        self.trace = trace
        self.max_depth = max_depth
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.logger = StepLogger(keep_history=trace)
        if trace:
            Tracer(trace_sink or _stderr_line).install(self.hooks)

    def run(self, source: str) -> None:
        """Execute one complete command string at nesting depth 0."""
        window = SourceWindow(source)
        self._emit_event("program_start", self, window)
        try:
            self._execute(window, 0)
        except BFError as error:
            self._fail(error)
            raise
        except RecursionError as exc:
            error = BFRuntimeError(f"Internal interpreter error: {exc}")
            self._fail(error)
            raise error from exc
        else:
            self._emit_event("program_end", self)

    def _fail(self, error: BFError) -> None:
        last = self.logger.last
        if last is not None:
            error.step_index = last.step_index
            if error.offset is None:
                error.offset = last.offset
        self.hooks.emit("on_error", self, error)

    def _execute(self, window: SourceWindow, depth: int) -> bool:
        """Run commands from ``window.start`` onward.

        Returns True when a closing bracket ended the current loop body and
        False when the end of the source was reached.
        """
        text = window.text
        tape = self.tape
        console = self.console
        log_step = self._log_step
        n = len(text)
        i = window.start
        while i < n:
            ch = text[i]
            if ch not in SYMBOLS:
                i += 1
                continue
            ctx = log_step(ch, i, depth)
            if ch == ">":
                tape.move_right()
            elif ch == "<":
                tape.move_left()
            elif ch == "+":
                tape.increment()
            elif ch == "-":
                tape.decrement()
            elif ch == ".":
                console.write(tape.read())
            elif ch == ",":
                value = console.read_one()
                if value is not None:
                    tape.write(value)
                self._emit_event("input", self, ctx, value)
            elif ch == "[":
                depth += 1
                if depth > self.max_depth:
                    raise NestingTooDeep(self.max_depth, offset=i)
                body = window.at(i + 1)
                # The body is rescanned from the source text on every pass.
                while tape.read() != 0:
                    if self.hooks.has_handlers("loop_check"):
                        self._emit_event("loop_check", self, self._context(ch, i, depth))
                    if not self._execute(body, depth):
                        raise UnmatchedOpenBracket(i)
                depth -= 1
                self._emit_event("loop_exit", self, self._context(ch, i, depth))
                i = find_closing_bracket(text, i)
            elif ch == "]":
                if depth == 0:
                    raise UnmatchedCloseBracket(i)
                return True
            i += 1
        return False

    def _context(self, command: str, offset: int, depth: int) -> StepContext:
        return StepContext(
            step_index=self.logger.count,
            command=command,
            offset=offset,
            depth=depth,
            cursor=self.tape.cursor,
            cell=self.tape.read(),
        )

    def _emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hooks.emit(event, *args)
        except (BFError, RecursionError):
            raise
        except Exception as exc:
            last = self.logger.last
            raise BFRuntimeError(
                f"Hook '{event}' failed: {exc}",
                offset=last.offset if last else None,
            )

    def _log_step(self, command: str, offset: int, depth: int) -> StepContext:
        entry = self.logger.record(self._context(command, offset, depth))
        self._emit_event("command", self, entry)
        return entry


class DiagnosticFormatter:
    """Renders a BFError for the diagnostic channel (stderr)."""

    def __init__(self, interpreter: Optional[Interpreter] = None) -> None:
        self.interpreter = interpreter

    def format_text(self, error: BFError, verbose: bool = False) -> str:
        lines = [f"{error.label}: {error.message}"]
        if verbose:
            if error.offset is not None:
                lines.append(f"  at source offset {error.offset}")
            if error.step_index is not None:
                lines.append(f"  after {error.step_index} steps")
            if self.interpreter is not None:
                tape = self.interpreter.tape
                lines.append(f"  cursor {tape.cursor} [{tape.read()}] of {tape.capacity}")
        return "\n".join(lines)

    def to_json(self, error: BFError) -> str:
        payload: Dict[str, Any] = {
            "type": error.__class__.__name__,
            "label": error.label,
            "message": error.message,
            "offset": error.offset,
            "failing_step_index": error.step_index,
        }
        if isinstance(error, TapeBoundsExceeded):
            payload["side"] = error.side
        data: Dict[str, Any] = {"error": payload}
        if self.interpreter is not None:
            tape = self.interpreter.tape
            data["tape"] = {"cursor": tape.cursor, "cell": tape.read(), "capacity": tape.capacity}
        return json.dumps(data, indent=2)


def run(
    source_text: str,
    tape_capacity: int = DEFAULT_CAPACITY,
    trace_enabled: bool = False,
    **options: Any,
) -> Interpreter:
    """Allocate a tape of ``tape_capacity`` cells and run ``source_text`` on it."""
    interpreter = Interpreter(capacity=tape_capacity, trace=trace_enabled, **options)
    interpreter.run(source_text)
    return interpreter
