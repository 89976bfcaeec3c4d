"""Time sources for deadline checks.

The engine only reads time. Anything callable with no arguments that
returns a non-decreasing integer Unix timestamp can serve as a clock; see
``presale.eth.client.ChainClock`` for block time.
"""

import time
from typing import Callable

Clock = Callable[[], int]


class SystemClock:
    """Wall-clock time in whole seconds."""

    def __call__(self) -> int:
        return int(time.time())


class FixedClock:
    """Clock pinned to one timestamp (CLI ``--at`` and tests)."""

    def __init__(self, timestamp: int):
        self.timestamp = int(timestamp)

    def __call__(self) -> int:
        return self.timestamp

    def advance(self, seconds: int) -> None:
        if seconds < 0:
            raise ValueError("time cannot move backwards")
        self.timestamp += seconds
