from __future__ import annotations
from typing import List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from lexer import BFRuntimeError


DEFAULT_CAPACITY = 65536


class TapeBoundsExceeded(BFRuntimeError):
    """The cursor was asked to leave ``[0, capacity)``.

    ``side`` is the direction that was exceeded. The message texts are the
    historical ones: running off the right end reads "underflow", off the left
    end "overflow".
    """

    MESSAGES = {
        "right": "stack underflow!",
        "left": "stack overflow!",
    }

    def __init__(self, side: str, *, offset: Optional[int] = None) -> None:
        super().__init__(self.MESSAGES[side], offset=offset)
        self.side = side


class Tape:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("tape capacity must be positive")
        self.capacity = int(capacity)
        self.cells: NDArray[np.uint8] = np.zeros(self.capacity, dtype=np.uint8)
        self.cursor = 0

    def move_right(self) -> None:
        if self.cursor < self.capacity - 1:
            self.cursor += 1
        else:
            raise TapeBoundsExceeded("right")

    def move_left(self) -> None:
        if self.cursor > 0:
            self.cursor -= 1
        else:
            raise TapeBoundsExceeded("left")

    # Cell arithmetic goes through Python ints: numpy scalar overflow warns.
    def increment(self) -> None:
        self.cells[self.cursor] = (int(self.cells[self.cursor]) + 1) & 0xFF

    def decrement(self) -> None:
        self.cells[self.cursor] = (int(self.cells[self.cursor]) - 1) & 0xFF

    def read(self) -> int:
        return int(self.cells[self.cursor])

    def write(self, value: int) -> None:
        self.cells[self.cursor] = int(value) & 0xFF

    # ---- inspection (used by the interactive shell) ----

    def peek(self, pos: int) -> int:
        return int(self.cells[pos])

    def peek_relative(self, delta: int) -> Optional[int]:
        pos = self.cursor + delta
        if 0 <= pos < self.capacity:
            return int(self.cells[pos])
        return None

    def prefix(self, count: int) -> List[int]:
        return [int(v) for v in self.cells[:count]]

    def clear(self) -> None:
        self.cells.fill(0)

    def snapshot(self) -> Tuple[int, bytes]:
        return self.cursor, self.cells.tobytes()

    def __len__(self) -> int:
        return self.capacity
