"""Per-caller fixed-window request limiter.

Each caller gets ``limit`` requests per window. The window opens on the
caller's first request and is reset lazily on the first check after it
expires; there are no background timers.

Process-local and unreplicated: counts reset on restart. The limiter is
constructed at startup and injected, so a shared backing store can replace
it without touching call sites.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    """Request count for one caller in the current window."""

    count: int
    reset_time: float


class RateLimiter:
    """Fixed-window counter keyed by caller id."""

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if limit <= 0:
            raise ValueError("limit must be positive")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._records: dict[str, RateLimitRecord] = {}

    def check(self, caller_id: str) -> bool:
        """Count a request and report whether it is allowed.

        Rejected requests are not counted.
        """
        now = self._clock()
        record = self._records.get(caller_id)

        if record is None or now >= record.reset_time:
            self._records[caller_id] = RateLimitRecord(1, now + self.window_seconds)
            return True

        if record.count >= self.limit:
            logger.warning(
                "Rate limit exceeded for caller %s (%d/%d)",
                caller_id,
                record.count,
                self.limit,
            )
            return False

        record.count += 1
        return True

    def retry_after(self, caller_id: str) -> float:
        """Seconds until the caller's window resets (0 if none is open)."""
        record = self._records.get(caller_id)
        if record is None:
            return 0.0
        return max(0.0, record.reset_time - self._clock())

    def get_record(self, caller_id: str) -> RateLimitRecord | None:
        return self._records.get(caller_id)
