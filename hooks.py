"""Observation points fired by the evaluator.

Handlers only watch a run; none of them can change the tape or the source
position. The debug tracer and ``on_error`` listeners are the users.
"""

from __future__ import annotations
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, DefaultDict, List


# In the order a run fires them.
EVENTS = (
    "program_start",
    "command",
    "loop_check",
    "loop_exit",
    "input",
    "program_end",
    "on_error",
)


@dataclass(frozen=True)
class StepContext:
    """Machine state just before one command runs."""

    step_index: int
    command: str
    offset: int
    depth: int
    cursor: int
    cell: int


Handler = Callable[..., None]


@dataclass
class HookRegistry:
    _handlers: DefaultDict[str, List[Handler]] = field(default_factory=lambda: defaultdict(list))

    def on_event(self, event: str, handler: Handler) -> Handler:
        if event not in EVENTS:
            raise ValueError(f"unknown event '{event}'")
        self._handlers[event].append(handler)
        return handler

    def has_handlers(self, event: str) -> bool:
        return bool(self._handlers.get(event))

    def emit(self, event: str, *args: Any) -> None:
        for handler in self._handlers.get(event, ()):
            handler(*args)
