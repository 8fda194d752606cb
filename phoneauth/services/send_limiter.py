"""Sliding-window limiter for OTP sends, keyed by phone and by client IP."""

import threading
import time
from collections.abc import Callable
from typing import Optional

from phoneauth.core.config import settings
from phoneauth.core.logging import get_logger

logger = get_logger("send_limiter")


class SendRateLimiter:
    """In-memory sliding window of send timestamps per key.

    Only keys with a send inside the current window are kept: checks never
    create entries, and cleanup_inactive() drops keys whose window emptied.
    """

    _instance: Optional["SendRateLimiter"] = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(
        self,
        window_seconds: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._window_seconds = window_seconds
        self._clock = clock
        self._attempts: dict[str, list[float]] = {}

    @classmethod
    def get_instance(cls) -> "SendRateLimiter":
        """Get the singleton instance (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                # Double-check locking pattern
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    @property
    def window(self) -> int:
        return self._window_seconds or settings.otp_send_window_seconds

    @property
    def tracked_keys(self) -> int:
        return len(self._attempts)

    def _recent(self, key: str, now: float) -> list[float]:
        recent = [t for t in self._attempts.get(key, []) if now - t < self.window]
        if recent:
            self._attempts[key] = recent
        else:
            self._attempts.pop(key, None)
        return recent

    def allows(self, key: str, limit: int) -> bool:
        """True while ``key`` has fewer than ``limit`` sends in the window."""
        return len(self._recent(key, self._clock())) < limit

    def record(self, key: str) -> None:
        self._attempts.setdefault(key, []).append(self._clock())

    def cleanup_inactive(self) -> int:
        """Drop keys with no send inside the window. Returns count removed."""
        now = self._clock()
        before = len(self._attempts)
        for key in list(self._attempts):
            self._recent(key, now)
        removed = before - len(self._attempts)
        if removed > 0:
            logger.debug(f"Send limiter cleanup: removed {removed} idle keys")
        return removed

    def reset(self) -> None:
        self._attempts.clear()


def get_send_limiter() -> SendRateLimiter:
    """Get the process-wide send limiter."""
    return SendRateLimiter.get_instance()
