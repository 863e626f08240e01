"""Fixed-window rate limiting for tool dispatch.

One ``RateLimiter`` is constructed per process and injected into the
dispatcher. Counters are keyed by ``(tool, agent_id, window)``. The first call
in a window sets its reset time to ``now + window``; later calls increment the
counter until the reset passes. Expired windows are swept at most once per
minute so idle keys do not accumulate.

A fixed window allows up to twice the limit across a window boundary. Callers
should treat limits as approximate.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from ..errors import RateLimitExceeded

MINUTE = 60.0
HOUR = 3600.0

_WINDOW_NAMES = {MINUTE: "minute", HOUR: "hour"}


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """Mutex-guarded fixed-window counters shared by all executions."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: Dict[Tuple[str, str, float], _Window] = {}
        self._next_sweep = 0.0

    def active_windows(self) -> int:
        with self._lock:
            return len(self._windows)

    def _sweep(self, now: float) -> None:
        if now < self._next_sweep:
            return
        self._windows = {k: w for k, w in self._windows.items() if now < w.reset_at}
        self._next_sweep = now + MINUTE

    def _current(self, key: Tuple[str, str, float], now: float) -> _Window:
        window = self._windows.get(key)
        if window is None or now >= window.reset_at:
            window = _Window(count=0, reset_at=now + key[2])
            self._windows[key] = window
        return window

    def acquire(
        self,
        tool: str,
        agent_id: str,
        *,
        per_minute: Optional[int] = None,
        per_hour: Optional[int] = None,
    ) -> None:
        """
        Count one call against every configured window.

        The minute window is checked before the hour window. A denied call is
        not counted against any window.

        Raises:
            RateLimitExceeded: Naming the window that is exhausted.
        """
        limits = [(MINUTE, per_minute), (HOUR, per_hour)]
        with self._lock:
            now = self._clock()
            self._sweep(now)
            windows = []
            for seconds, limit in limits:
                if limit is None:
                    continue
                window = self._current((tool, agent_id, seconds), now)
                if window.count >= limit:
                    raise RateLimitExceeded(tool, limit, _WINDOW_NAMES[seconds])
                windows.append(window)
            for window in windows:
                window.count += 1

    def remaining(self, tool: str, agent_id: str, *, window: float, limit: int) -> int:
        with self._lock:
            current = self._current((tool, agent_id, window), self._clock())
            return max(0, limit - current.count)

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()
            self._next_sweep = 0.0
