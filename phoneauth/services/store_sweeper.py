"""Store sweeper - periodically prunes OTP, session token and blacklist tables."""

import asyncio
import threading
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from phoneauth.core.clock import Clock, utcnow
from phoneauth.core.config import settings
from phoneauth.core.logging import get_logger
from phoneauth.services.otp import OtpEngine
from phoneauth.services.send_limiter import SendRateLimiter, get_send_limiter
from phoneauth.services.token import TokenEngine

logger = get_logger("store_sweeper")


@dataclass
class SweepReport:
    otp_records_deleted: int = 0
    tokens_marked_expired: int = 0
    tokens_purged: int = 0
    blacklist_entries_purged: int = 0
    send_limit_keys_pruned: int = 0

    @property
    def total(self) -> int:
        return (
            self.otp_records_deleted
            + self.tokens_marked_expired
            + self.tokens_purged
            + self.blacklist_entries_purged
            + self.send_limit_keys_pruned
        )


class StoreSweeper:
    """Background service that keeps the three auth stores bounded.

    Each pass, in its own transaction per table:
    - deletes OTP records past expires_at
    - flags session tokens past expires_at as expired
    - deletes session tokens past expires_at + grace
    - deletes blacklist entries older than the token lifetime; a token is
      always issued before it is blacklisted, so by then it has expired
    - drops OTP send-limit keys with no send inside their window
    """

    _instance: Optional["StoreSweeper"] = None
    _instance_lock: threading.Lock = threading.Lock()

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
        interval_seconds: int | None = None,
        token_grace: timedelta | None = None,
        blacklist_retention: timedelta | None = None,
        clock: Clock = utcnow,
        send_limiter: SendRateLimiter | None = None,
    ):
        self._session_maker = session_maker
        self._send_limiter = send_limiter
        self._interval = interval_seconds or settings.sweep_interval_seconds
        self._token_grace = (
            token_grace
            if token_grace is not None
            else timedelta(days=settings.session_token_purge_grace_days)
        )
        self._blacklist_retention = blacklist_retention or timedelta(
            days=settings.session_token_expire_days
        )
        self._clock = clock
        self._running = False
        self._task: asyncio.Task | None = None

    @classmethod
    def get_instance(cls) -> "StoreSweeper":
        """Get singleton instance of the sweeper (thread-safe)."""
        if cls._instance is None:
            with cls._instance_lock:
                # Double-check locking pattern
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def set_session_maker(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the background sweep task."""
        if self._running:
            logger.warning("Store sweeper is already running")
            return
        if self._session_maker is None:
            raise RuntimeError("Store sweeper has no session factory")

        self._running = True
        self._task = asyncio.create_task(self._sweep_loop(), name="store-sweeper")
        logger.info(f"Store sweeper started (interval: {self._interval}s)")

    async def stop(self) -> None:
        """Stop the background sweep task."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Store sweeper stopped")

    async def _sweep_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            try:
                await self.run_now()
            except Exception as e:
                logger.error(f"Error in store sweep: {e}")

    async def run_now(self) -> SweepReport:
        """Run one sweep pass immediately."""
        if self._session_maker is None:
            raise RuntimeError("Store sweeper has no session factory")

        report = SweepReport()

        async with self._session_maker() as db:
            report.otp_records_deleted = await OtpEngine(db, clock=self._clock).purge_expired()

        async with self._session_maker() as db:
            tokens = TokenEngine(db, clock=self._clock)
            report.tokens_marked_expired = await tokens.mark_expired()
            report.tokens_purged = await tokens.purge_expired(self._token_grace)
            report.blacklist_entries_purged = await tokens.purge_blacklist(
                self._blacklist_retention
            )

        limiter = self._send_limiter or get_send_limiter()
        report.send_limit_keys_pruned = limiter.cleanup_inactive()

        if report.total > 0:
            logger.info(
                f"Store sweep: {report.otp_records_deleted} OTP records deleted, "
                f"{report.tokens_marked_expired} tokens marked expired, "
                f"{report.tokens_purged} tokens purged, "
                f"{report.blacklist_entries_purged} blacklist entries purged, "
                f"{report.send_limit_keys_pruned} idle send-limit keys dropped"
            )
        return report
