from __future__ import annotations

from collections import deque
from itertools import islice
from typing import Iterator

from ingestion.contracts.tick import Tick
from regime_engine.utils.logger import get_logger, log_debug

DEFAULT_BASELINE = 1.0


class TickHistory:
    """
    Bounded, time-ordered tick history (ring buffer).

    Only the tail is ever read: the last `baseline_window` ticks for the
    spread baseline and the last `slope_lag + 1` ticks for the dd slope.
    """

    def __init__(self, retention: int = 1440):
        if retention <= 0:
            raise ValueError("TickHistory retention must be > 0")
        self.retention = int(retention)
        self.buffer: deque[Tick] = deque(maxlen=self.retention)
        self._logger = get_logger(__name__)

    def __len__(self) -> int:
        return len(self.buffer)

    def __iter__(self) -> Iterator[Tick]:
        return iter(self.buffer)

    def __getitem__(self, i: int) -> Tick:
        return self.buffer[i]

    def append(self, tick: Tick) -> None:
        self.buffer.append(tick)

    def last(self) -> Tick | None:
        if not self.buffer:
            return None
        return self.buffer[-1]

    def last_timestamp(self) -> int | None:
        t = self.last()
        return t.timestamp if t is not None else None

    def tail(self, n: int) -> list[Tick]:
        """Last n ticks, oldest first."""
        if n <= 0:
            return []
        out = list(islice(reversed(self.buffer), n))
        out.reverse()
        return out

    def baseline(self, window: int = 60) -> float:
        """Mean spread over the last min(window, len) ticks; 1.0 on a cold start."""
        n = min(int(window), len(self.buffer))
        if n == 0:
            return DEFAULT_BASELINE
        return sum(t.spread for t in islice(reversed(self.buffer), n)) / n

    def dd_slope(self, lag: int = 10) -> float:
        """dd[n-1] - dd[n-1-lag]; 0.0 until lag + 1 ticks are held."""
        n = len(self.buffer)
        if n < lag + 1:
            return 0.0
        return self.buffer[-1].dd - self.buffer[-1 - lag].dd

    def clear(self) -> None:
        log_debug(self._logger, "history.cleared", size=len(self.buffer))
        self.buffer.clear()
