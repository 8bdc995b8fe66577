# src/avatutor/pipeline/monitor.py
from __future__ import annotations
import time
from collections import deque
from avatutor.core.logging import get_logger

log = get_logger(__name__)


class LatencyMonitor:
    """
    Rolling view of turn latency and error frequency for one session.

    latency: last `window` accept→finalize durations in ms
    errors:  monotonic timestamps of failed turns within `error_window_s`

    Advisory only: nothing here changes how a turn is processed.
    """

    def __init__(
        self,
        slow_ms: float = 5000.0,
        window: int = 20,
        error_window_s: float = 60.0,
        error_threshold: int = 3,
    ) -> None:
        self.slow_ms = slow_ms
        self.error_window_s = error_window_s
        self.error_threshold = error_threshold
        self._latencies: deque[float] = deque(maxlen=window)
        self._errors: deque[float] = deque()
        self.slow_count = 0

    def record(self, latency_ms: float) -> bool:
        """Record a finished turn; returns True when it counts as slow."""
        self._latencies.append(latency_ms)
        slow = latency_ms > self.slow_ms
        if slow:
            self.slow_count += 1
            log.warning("slow response", latency_ms=round(latency_ms, 1), threshold_ms=self.slow_ms)
        return slow

    def record_error(self, kind: str, now: float | None = None) -> bool:
        """Record a failure; returns True when failures are piling up."""
        now = time.monotonic() if now is None else now
        self._errors.append(now)
        while self._errors and now - self._errors[0] > self.error_window_s:
            self._errors.popleft()
        frequent = len(self._errors) >= self.error_threshold
        if frequent:
            log.error(
                "frequent errors",
                kind=kind,
                count=len(self._errors),
                window_s=self.error_window_s,
            )
        return frequent

    @property
    def mean_ms(self) -> float:
        if not self._latencies:
            return 0.0
        return sum(self._latencies) / len(self._latencies)

    @property
    def max_ms(self) -> float:
        if not self._latencies:
            return 0.0
        return max(self._latencies)

    def reset(self) -> None:
        self._latencies.clear()
        self._errors.clear()
        self.slow_count = 0
