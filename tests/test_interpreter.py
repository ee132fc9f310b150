import json

import pytest

from console import StreamConsole
from hooks import HookRegistry
from interpreter import DiagnosticFormatter, Interpreter, NestingTooDeep, run
from lexer import BFRuntimeError, UnmatchedCloseBracket, UnmatchedOpenBracket
from tape import Tape, TapeBoundsExceeded

HELLO = (
    "++++++++[>++++[>++>+++>+++>+<<<<-]>+>+>->>+[<]<-]"
    ">>.>---.+++++++..+++.>>.<-.<.+++.------.--------.>>+.>++."
)


def make(source_input=b"", **kwargs):
    console = StreamConsole(source_input)
    interpreter = Interpreter(capacity=kwargs.pop("capacity", 64), console=console, **kwargs)
    return interpreter, console


def test_add_and_output():
    interpreter, console = make()
    interpreter.run("+++.")
    assert bytes(console.output) == b"\x03"


def test_clear_loop_runs_once_per_unit():
    interpreter, console = make()
    checks = []
    interpreter.hooks.on_event("loop_check", lambda interp, ctx: checks.append(ctx.cell))
    interpreter.tape.write(5)
    interpreter.run("[-]+")
    assert checks == [5, 4, 3, 2, 1]
    assert interpreter.tape.read() == 1


def test_hello_world():
    interpreter, console = make()
    interpreter.run(HELLO)
    assert console.text() == "Hello World!\n"


def test_comments_are_ignored():
    interpreter, console = make()
    interpreter.run("add three +++ then print it .")
    assert bytes(console.output) == b"\x03"


def test_noop_program_leaves_tape_untouched():
    interpreter, console = make()
    interpreter.run("+>++")
    before = interpreter.tape.snapshot()
    interpreter.run("just words 123 ()")
    assert interpreter.tape.snapshot() == before
    assert console.output == bytearray()


def test_unmatched_open_bracket_produces_no_output():
    interpreter, console = make()
    with pytest.raises(UnmatchedOpenBracket) as info:
        interpreter.run("[.")
    assert info.value.offset == 0
    assert console.output == bytearray()


def test_open_bracket_with_nonzero_cell_and_no_close():
    interpreter, console = make()
    with pytest.raises(UnmatchedOpenBracket) as info:
        interpreter.run("+[-")
    assert info.value.offset == 1


def test_unmatched_close_bracket_at_top_level():
    interpreter, _ = make()
    with pytest.raises(UnmatchedCloseBracket) as info:
        interpreter.run("]")
    assert info.value.message == "found unmatched brace!"


def test_stray_close_after_loop():
    interpreter, _ = make()
    with pytest.raises(UnmatchedCloseBracket) as info:
        interpreter.run("+[-]]")
    assert info.value.offset == 4


def test_skipped_loop_with_zero_cell():
    interpreter, console = make()
    interpreter.run("[.+++.]++.")
    assert bytes(console.output) == b"\x02"


def test_input_end_leaves_cell_unchanged():
    interpreter, console = make(b"")
    interpreter.run(",.")
    assert bytes(console.output) == b"\x00"
    assert interpreter.tape.read() == 0


def test_eot_byte_is_end_of_input():
    interpreter, console = make(b"\x04")
    interpreter.tape.write(7)
    interpreter.run(",.")
    assert bytes(console.output) == b"\x07"


def test_input_is_echoed_then_stored():
    interpreter, console = make(b"A")
    interpreter.run(",+.")
    assert console.text() == "AB"
    assert interpreter.tape.read() == ord("B")


def test_cat_until_end_of_input():
    interpreter, console = make(b"hi\x00")
    console.echo = False
    interpreter.run(",[.,]")
    assert console.text() == "hi"


def test_left_of_first_cell_fails():
    interpreter, _ = make()
    with pytest.raises(TapeBoundsExceeded) as info:
        interpreter.run("+<")
    assert info.value.side == "left"
    assert info.value.offset == 1
    assert info.value.step_index == 1


def test_right_of_last_cell_fails():
    interpreter, _ = make(capacity=3)
    with pytest.raises(TapeBoundsExceeded) as info:
        interpreter.run(">>>")
    assert info.value.side == "right"
    assert interpreter.tape.cursor == 2


def test_tape_and_cursor_persist_between_runs():
    tape = Tape(16)
    interpreter = Interpreter(tape=tape, console=StreamConsole())
    interpreter.run(">+++")
    interpreter.run("+")
    assert tape.cursor == 1
    assert tape.read() == 4


def test_nesting_ceiling():
    interpreter, _ = make(max_depth=3)
    interpreter.run("+[[[-]]]")
    with pytest.raises(NestingTooDeep) as info:
        interpreter.run("+[[[[-]]]]")
    assert info.value.offset == 4


def test_trace_lines():
    lines = []
    interpreter, _ = make(trace=True, trace_sink=lines.append)
    interpreter.run("+[-]")
    assert lines == [
        "  + increment pos: 0 [1]",
        "  [ while item 0 not '0' [1]:",
        "    - decrement pos: 0 [0]",
        "  [ item 0 is '0' [0]",
    ]
    assert [entry.command for entry in interpreter.logger.entries] == ["+", "[", "-", "]"]


def test_trace_moves_and_io():
    lines = []
    interpreter, _ = make(b"", capacity=2, trace=True, trace_sink=lines.append)
    interpreter.run(">.<,")
    assert lines == [
        "  > Move pointer right: 1 [0]",
        "  . output value of: 1 [0] => \\x00",
        "  < Move pointer left: 0 [0]",
        "  , read EOF in: 0 [0]",
    ]


def test_history_not_kept_without_trace():
    interpreter, _ = make()
    interpreter.run("+++")
    assert interpreter.logger.entries == []
    assert interpreter.logger.count == 3
    assert interpreter.logger.last.command == "+"


def test_failing_hook_becomes_runtime_error():
    interpreter, _ = make()

    def boom(interp, ctx):
        raise ValueError("boom")

    interpreter.hooks.on_event("command", boom)
    with pytest.raises(BFRuntimeError) as info:
        interpreter.run("+")
    assert info.value.message == "Hook 'command' failed: boom"


def test_events_reach_shared_registry():
    hooks = HookRegistry()
    seen = []
    hooks.on_event("program_start", lambda interp, window: seen.append("start"))
    hooks.on_event("command", lambda interp, ctx: seen.append(ctx.step_index))
    hooks.on_event("program_end", lambda interp: seen.append("end"))
    interpreter = Interpreter(capacity=8, console=StreamConsole(), hooks=hooks)
    interpreter.run("+++")
    assert seen == ["start", 0, 1, 2, "end"]


def test_unknown_event_is_rejected():
    with pytest.raises(ValueError):
        HookRegistry().on_event("on_step", print)


def test_on_error_event_sees_error():
    interpreter, _ = make()
    errors = []
    interpreter.hooks.on_event("on_error", lambda interp, err: errors.append(err))
    with pytest.raises(UnmatchedCloseBracket):
        interpreter.run("+]")
    assert len(errors) == 1


def test_recursion_limit_is_reported_like_other_errors():
    interpreter, _ = make(max_depth=10000)
    errors = []
    interpreter.hooks.on_event("on_error", lambda interp, err: errors.append(err))
    with pytest.raises(BFRuntimeError) as info:
        interpreter.run("+" + "[" * 5000 + "]" * 5000)
    assert info.value.message.startswith("Internal interpreter error")
    assert errors == [info.value]
    assert info.value.step_index is not None
    assert info.value.offset is not None


def test_trace_shows_printable_output():
    lines = []
    interpreter, _ = make(trace=True, trace_sink=lines.append)
    interpreter.tape.write(ord("A"))
    interpreter.run(".")
    assert lines == ["  . output value of: 0 [65] => A"]


def test_run_helper():
    interpreter = run("++>+", 4, False, console=StreamConsole())
    assert interpreter.tape.capacity == 4
    assert interpreter.tape.prefix(2) == [2, 1]


def test_diagnostic_text_and_json():
    interpreter, _ = make(capacity=2)
    with pytest.raises(TapeBoundsExceeded) as info:
        interpreter.run(">>")
    formatter = DiagnosticFormatter(interpreter)
    assert formatter.format_text(info.value) == "ParsingError: stack underflow!"
    verbose = formatter.format_text(info.value, verbose=True)
    assert "at source offset 1" in verbose
    data = json.loads(formatter.to_json(info.value))
    assert data["error"]["type"] == "TapeBoundsExceeded"
    assert data["error"]["side"] == "right"
    assert data["error"]["failing_step_index"] == 1
    assert data["tape"] == {"cursor": 1, "cell": 0, "capacity": 2}
