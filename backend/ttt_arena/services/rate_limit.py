import time
from dataclasses import dataclass
from typing import Callable, Dict


@dataclass
class WindowCounter:
    count: int
    window_reset_at: float


class RateLimiter:
    """Fixed-window action counter keyed by connection id."""

    def __init__(self, max_per_window: int, window_ms: int, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_per_window = max_per_window
        self.window_sec = window_ms / 1000.0
        self._clock = clock
        self._counters: Dict[str, WindowCounter] = {}

    def check(self, key: str) -> bool:
        now = self._clock()
        counter = self._counters.get(key)
        if counter is None or now > counter.window_reset_at:
            self._counters[key] = WindowCounter(count=1, window_reset_at=now + self.window_sec)
            return 1 <= self.max_per_window
        counter.count += 1
        return counter.count <= self.max_per_window

    def forget(self, key: str) -> None:
        self._counters.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._counters
