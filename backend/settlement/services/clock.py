"""Time sources for escrow timeouts.

The engine only compares integers, so a clock may count blocks or seconds
as long as ``escrow_timeout`` is configured in the same unit.
"""

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int: ...


class ManualClock:
    """Block-height clock advanced by hand (tests, replays)."""

    def __init__(self, height: int = 0) -> None:
        self.height = height

    def now(self) -> int:
        return self.height

    def advance(self, blocks: int = 1) -> int:
        self.height += blocks
        return self.height


class WallClock:
    """Unix time divided into ticks of ``unit_seconds``.

    With the default 600-second tick, one tick approximates one block.
    """

    def __init__(self, unit_seconds: int = 600) -> None:
        if unit_seconds <= 0:
            raise ValueError("unit_seconds must be positive")
        self.unit_seconds = unit_seconds

    def now(self) -> int:
        return int(time.time()) // self.unit_seconds
