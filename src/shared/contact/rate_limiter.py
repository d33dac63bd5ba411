"""Fixed-window rate limiting for contact form submissions."""

from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Dict, Optional

from src.shared.logs.logger import StructuredLogger, get_logger


DEFAULT_WINDOW = timedelta(hours=1)
DEFAULT_MAX_REQUESTS = 5
DEFAULT_KEY_PREFIX = "rate_limit_"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RateLimitRecord:
    """Request count for one key within the current window."""
    def __init__(self, count: int, window_start: datetime):
        self.count = count
        self.window_start = window_start


class RateLimitStatus:
    """Result of a check or increment."""
    def __init__(self, is_limited: bool, remaining: int, reset_time: datetime, ms_before_next: int):
        self.is_limited = is_limited
        self.remaining = remaining
        self.reset_time = reset_time
        self.ms_before_next = ms_before_next

    @property
    def retry_after_seconds(self) -> int:
        """Whole seconds until the next request is allowed (rounded up)."""
        return -(-self.ms_before_next // 1000)

    def to_dict(self) -> Dict:
        return {
            "is_limited": self.is_limited,
            "remaining": self.remaining,
            "reset_time": self.reset_time.isoformat(),
            "ms_before_next": self.ms_before_next,
        }


class RateLimiter:
    """
    In-memory fixed-window rate limiter keyed by an arbitrary string.

    Expired windows are reset lazily, on the next check or increment for that
    key. Use prune_expired() to drop stale keys.
    """

    def __init__(
        self,
        window: timedelta = DEFAULT_WINDOW,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        clock: Callable[[], datetime] = _utcnow,
        logger: Optional[StructuredLogger] = None,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window <= timedelta(0):
            raise ValueError("window must be positive")
        self.window = window
        self.max_requests = max_requests
        self.key_prefix = key_prefix
        self._clock = clock
        self._logger = logger or get_logger("rate_limiter")
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = Lock()

    def _limit_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def _current_record(self, limit_key: str, now: datetime) -> RateLimitRecord:
        """Get or create the record, resetting it if its window has expired. Caller holds the lock."""
        record = self._records.get(limit_key)
        if record is None:
            record = RateLimitRecord(count=0, window_start=now)
            self._records[limit_key] = record
        elif now - record.window_start > self.window:
            record.count = 0
            record.window_start = now
        return record

    def _status(self, record: RateLimitRecord, now: datetime) -> RateLimitStatus:
        reset_time = record.window_start + self.window
        is_limited = record.count >= self.max_requests
        ms_before_next = 0
        if is_limited:
            ms_before_next = max(0, int((reset_time - now).total_seconds() * 1000))
        return RateLimitStatus(
            is_limited=is_limited,
            remaining=max(0, self.max_requests - record.count),
            reset_time=reset_time,
            ms_before_next=ms_before_next,
        )

    def check(self, key: str) -> RateLimitStatus:
        """Report whether `key` is limited without counting a request."""
        now = self._clock()
        with self._lock:
            record = self._current_record(self._limit_key(key), now)
            return self._status(record, now)

    def increment(self, key: str) -> RateLimitStatus:
        """Count one request for `key` and return the updated status."""
        now = self._clock()
        limit_key = self._limit_key(key)
        with self._lock:
            record = self._current_record(limit_key, now)
            record.count += 1
            count = record.count
            status = self._status(record, now)

        self._logger.info("Rate limit updated", {
            "key": limit_key,
            "count": count,
            "remaining": status.remaining,
            "reset_time": status.reset_time.isoformat(),
            "is_limited": status.is_limited,
        })
        return status

    def reset(self, key: str) -> None:
        limit_key = self._limit_key(key)
        with self._lock:
            self._records.pop(limit_key, None)
        self._logger.info("Rate limit reset", {"key": limit_key})

    def reset_all(self) -> None:
        with self._lock:
            self._records.clear()
        self._logger.info("All rate limits reset")

    def prune_expired(self) -> int:
        """Drop records whose window has expired. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [
                k for k, record in self._records.items()
                if now - record.window_start > self.window
            ]
            for k in expired:
                del self._records[k]
        if expired:
            self._logger.debug("Pruned expired rate limit records", {"count": len(expired)})
        return len(expired)

    def __len__(self) -> int:
        return len(self._records)
