"""Time box for a single sync invocation."""
import time
from typing import Callable, Optional
import structlog

from catalog_sync.config import SyncSettings, sync_settings

logger = structlog.get_logger(__name__)


class ExecutionBudget:
    """Decides between records whether the invocation should stop.

    The budget is exhausted when elapsed time reaches the hard limit minus
    the safety buffer, or earlier when the smoothed per-record time says
    the next `check_frequency` records would not fit in what is left.
    A max_seconds of 0 disables the time box entirely.

    Args:
        max_seconds: Hard execution limit (0 = unlimited)
        safety_buffer: Seconds kept in reserve before the hard limit
        check_frequency: Records that must still fit in the remaining time
        smoothing: Exponential moving average factor for per-record time
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        max_seconds: float = 0.0,
        safety_buffer: float = 5.0,
        check_frequency: int = 10,
        smoothing: float = 0.3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_seconds = max_seconds
        self.safety_buffer = safety_buffer
        self.check_frequency = check_frequency
        self.smoothing = smoothing
        self.clock = clock
        self.started_at: Optional[float] = None
        self._last_mark: Optional[float] = None
        self.avg_record_seconds: Optional[float] = None
        self.records = 0

    @classmethod
    def from_settings(cls, config: SyncSettings = sync_settings, **kwargs) -> "ExecutionBudget":
        return cls(
            max_seconds=config.max_execution_seconds,
            safety_buffer=config.safety_buffer_seconds,
            check_frequency=config.timeout_check_frequency,
            smoothing=config.speed_smoothing,
            **kwargs,
        )

    @property
    def enabled(self) -> bool:
        return self.max_seconds > 0

    def start(self) -> None:
        self.started_at = self.clock()
        self._last_mark = self.started_at
        self.avg_record_seconds = None
        self.records = 0

    def elapsed(self) -> float:
        if self.started_at is None:
            return 0.0
        return self.clock() - self.started_at

    def record_done(self, count: int = 1) -> None:
        """Fold the time since the previous mark into the per-record average."""
        if count < 1:
            return
        now = self.clock()
        if self._last_mark is None:
            self._last_mark = now
            return
        per_record = (now - self._last_mark) / count
        self._last_mark = now
        self.records += count
        if self.avg_record_seconds is None:
            self.avg_record_seconds = per_record
        else:
            self.avg_record_seconds = (
                self.smoothing * per_record
                + (1 - self.smoothing) * self.avg_record_seconds
            )

    def exhausted(self) -> bool:
        """Whether the invocation should stop before the next record."""
        if not self.enabled:
            return False

        elapsed = self.elapsed()
        if elapsed >= self.max_seconds:
            return True

        safe_limit = self.max_seconds - self.safety_buffer
        if elapsed >= safe_limit:
            return True

        if self.avg_record_seconds:
            remaining = safe_limit - elapsed
            needed = self.avg_record_seconds * self.check_frequency
            if remaining < needed:
                logger.info(
                    "execution_budget_predicted_overrun",
                    remaining=round(remaining, 3),
                    needed=round(needed, 3),
                    check_frequency=self.check_frequency,
                )
                return True

        return False
