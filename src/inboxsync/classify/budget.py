"""Call budget for AI providers."""

import time
from collections import deque
from typing import Callable, Optional


class RateBudget:
    """Per-run and per-minute call allowance.

    ``try_acquire`` never waits: when either limit is reached it returns
    False and the caller falls back to passthrough.
    """

    WINDOW = 60.0

    def __init__(
        self,
        max_per_run: Optional[int] = None,
        max_per_minute: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_per_run = max_per_run
        self.max_per_minute = max_per_minute
        self._clock = clock
        self._used = 0
        self._recent: deque[float] = deque()

    @property
    def used(self) -> int:
        return self._used

    def reset(self) -> None:
        """Start a new run. The sliding minute window carries over."""
        self._used = 0

    def try_acquire(self) -> bool:
        now = self._clock()
        while self._recent and now - self._recent[0] >= self.WINDOW:
            self._recent.popleft()

        if self.max_per_run is not None and self._used >= self.max_per_run:
            return False
        if self.max_per_minute is not None and len(self._recent) >= self.max_per_minute:
            return False

        self._used += 1
        self._recent.append(now)
        return True
