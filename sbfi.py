"""sbfi entry point and REPL wiring."""

from __future__ import annotations
import argparse
import sys
from typing import List, NoReturn, Optional

from console import Console
from interpreter import DEFAULT_MAX_DEPTH, DiagnosticFormatter, Interpreter
from lexer import BFError, BFOptionsError, assemble_source
from tape import DEFAULT_CAPACITY, Tape


VERSION = "0.3"
BANNER = f"sbfi - simple brainfuck interpreter\n(c) 2015 Bernd Busse v{VERSION}"
PROMPT = ">>> "
DEFAULT_PRINT_COUNT = 16


class OptionsParser(argparse.ArgumentParser):
    """Reports usage problems as OptionsError instead of exiting with status 2."""

    def error(self, message: str) -> NoReturn:
        raise BFOptionsError(message)


def _build_parser() -> OptionsParser:
    parser = OptionsParser(prog="sbfi", description="sbfi - simple brainfuck interpreter")
    parser.add_argument("-c", "--size", type=int, default=DEFAULT_CAPACITY, help="Number of tape cells (default: %(default)s)")
    parser.add_argument("-f", "--file", dest="filename", help="Run a source file instead of the interactive shell")
    parser.add_argument("-d", "--debug", action="store_true", help="Trace every command to stderr")
    parser.add_argument("--max-depth", type=int, default=DEFAULT_MAX_DEPTH, help="Deepest allowed loop nesting (default: %(default)s)")
    parser.add_argument("--error-json", action="store_true", help="Also emit the diagnostic as JSON")
    parser.add_argument("-V", "--version", action="version", version=BANNER)
    return parser


def _report(error: BFError, interpreter: Optional[Interpreter], *, verbose: bool = False, error_json: bool = False) -> int:
    formatter = DiagnosticFormatter(interpreter)
    sys.stdout.flush()
    print(formatter.format_text(error, verbose=verbose), file=sys.stderr)
    if error_json:
        print(formatter.to_json(error), file=sys.stderr)
    return 1


def _parse_number(rest: str, default: int) -> int:
    parts = rest.split()
    if not parts or not parts[0].isdigit():
        return default
    return int(parts[0])


def show_cell(tape: Tape, rest: str) -> str:
    pos = min(_parse_number(rest, 0), tape.capacity - 1)
    value = tape.peek(pos)
    return f"#{pos} element: {value:3d} [{chr(value)}]"


def print_prefix(tape: Tape, rest: str) -> str:
    num = min(_parse_number(rest, DEFAULT_PRINT_COUNT), tape.capacity)
    cells = []
    for i, value in enumerate(tape.prefix(num)):
        if i == tape.cursor:
            cells.append(f"[{value:3d}] ")
        else:
            cells.append(f"{value:3d} ")
    return f"First {num} entries of stack:\n" + "".join(cells)


def _read_line() -> Optional[str]:
    # Same byte stream the `,` command reads from, so nothing is buffered twice.
    raw = sys.stdin.buffer.readline()
    if not raw:
        return None
    return raw.rstrip(b"\r\n").decode("utf-8", errors="replace")


def run_repl(interpreter: Interpreter, *, verbose: bool = False, error_json: bool = False) -> int:
    tape = interpreter.tape
    while True:
        print(PROMPT, end="", flush=True)
        line = _read_line()
        if line is None:
            print()
            return 0

        stripped = line.strip()
        if stripped == "exit":
            print("Exiting...")
            return 0
        if stripped == "clear":
            print("Clear stack!")
            tape.clear()
            continue
        if stripped == "len":
            print(f"Stack length: {tape.capacity}")
            continue
        if stripped.startswith("show"):
            print(show_cell(tape, stripped[4:]))
            continue
        if stripped.startswith("print"):
            print(print_prefix(tape, stripped[5:]))
            continue

        try:
            interpreter.run(line)
        except BFError as error:
            return _report(error, interpreter, verbose=verbose, error_json=error_json)


def run_file(interpreter: Interpreter, filename: str, *, verbose: bool = False, error_json: bool = False) -> int:
    try:
        with open(filename, "r", encoding="utf-8", errors="replace") as handle:
            if verbose:
                print(f"Reading file '{filename}'")
            source_text = assemble_source(handle)
    except OSError:
        print(f"Can't open file '{filename}'", file=sys.stderr)
        return 1

    try:
        interpreter.run(source_text)
    except BFError as error:
        return _report(error, interpreter, verbose=verbose, error_json=error_json)
    return 0


def run_cli(argv: Optional[List[str]] = None, *, console: Optional[Console] = None) -> int:
    parser = _build_parser()
    try:
        args = parser.parse_args(argv)
        if args.size <= 0:
            raise BFOptionsError(f"Invalid size of {args.size}!")
        if args.max_depth <= 0:
            raise BFOptionsError(f"Invalid nesting depth of {args.max_depth}!")
    except BFError as error:
        return _report(error, None)

    if args.filename is None:
        print(BANNER)

    if args.debug:
        print("Debug Mode!")
        print(f"Generating stack with {args.size} items")

    try:
        interpreter = Interpreter(
            capacity=args.size,
            console=console,
            trace=args.debug,
            max_depth=args.max_depth,
        )
    except (MemoryError, ValueError, OverflowError):
        print("Error occured on allocating stack. Exiting...", file=sys.stderr)
        return 1

    if args.filename is not None:
        return run_file(interpreter, args.filename, verbose=args.debug, error_json=args.error_json)
    return run_repl(interpreter, verbose=args.debug, error_json=args.error_json)


def main() -> None:
    sys.exit(run_cli())


if __name__ == "__main__":
    main()
