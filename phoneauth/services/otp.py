"""OTP engine - issues, re-issues and verifies one-time codes."""

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from phoneauth.core.clock import Clock, as_utc, utcnow
from phoneauth.core.config import Settings, settings
from phoneauth.core.logging import mask_phone
from phoneauth.models.otp_record import OtpRecord
from phoneauth.services.delivery import DeliveryDispatcher, format_otp_message
from phoneauth.services.otp_store import OtpStore
from phoneauth.services.results import AuthFailure, OtpVerification

logger = logging.getLogger(__name__)

# Optimistic-lock conflicts tolerated per verify call before giving up
VERIFY_CONFLICT_RETRIES = 3


class OtpConflictError(Exception):
    """Concurrent verifications kept colliding on the same record."""

    pass


@dataclass(frozen=True)
class OtpPolicy:
    """Tunables for code generation and the brute-force lockout."""

    code_length: int = 6
    validity: timedelta = timedelta(minutes=5)
    max_attempts: int = 3
    # Whether a verify after expiry consumes an attempt
    count_expired_attempts: bool = True

    @classmethod
    def from_settings(cls, s: Settings) -> "OtpPolicy":
        return cls(
            code_length=s.otp_length,
            validity=timedelta(minutes=s.otp_validity_minutes),
            max_attempts=s.otp_max_attempts,
            count_expired_attempts=s.otp_count_expired_attempts,
        )

    @property
    def validity_minutes(self) -> int:
        return int(self.validity.total_seconds() // 60)


@dataclass
class OtpIssue:
    """A freshly issued code and the record that holds it."""

    code: str
    record: OtpRecord


def generate_code(length: int) -> str:
    """Fixed-length numeric code from the OS CSPRNG, leading zeros kept."""
    return f"{secrets.randbelow(10**length):0{length}d}"


class OtpEngine:
    """Issue and verify one-time codes for a phone number.

    verify() walks a terminal decision list, first match wins:

    1. no unverified record      -> NOT_FOUND
    2. past expires_at           -> EXPIRED   (attempt consumed by default)
    3. attempts >= max_attempts  -> EXHAUSTED (no further increment)
    4. wrong code                -> MISMATCH  (attempt consumed)
    5. otherwise                 -> verified; the record is never found again

    Every call commits its own transaction, so consumed attempts persist
    even though the caller goes on to reject the request.
    """

    def __init__(
        self,
        session: AsyncSession,
        dispatcher: DeliveryDispatcher | None = None,
        policy: OtpPolicy | None = None,
        clock: Clock = utcnow,
        app_name: str | None = None,
    ):
        self.session = session
        self.store = OtpStore(session)
        self.dispatcher = dispatcher
        self.policy = policy or OtpPolicy.from_settings(settings)
        self.clock = clock
        self.app_name = app_name or settings.app_name

    async def issue(self, phone: str) -> OtpIssue:
        """Replace any pending code for ``phone`` with a new one and send it."""
        removed = await self.store.delete_unverified(phone)
        now = self.clock()
        code = generate_code(self.policy.code_length)
        record = await self.store.add(
            OtpRecord(
                phone=phone,
                code=code,
                created_at=now,
                expires_at=now + self.policy.validity,
                verified=False,
                attempts=0,
            )
        )
        await self.session.commit()

        logger.info(f"Issued OTP for {mask_phone(phone)} (replaced {removed} pending)")

        # Only after commit: delivery must never hold the transaction open
        if self.dispatcher is not None:
            message = format_otp_message(self.app_name, code, self.policy.validity_minutes)
            self.dispatcher.dispatch(phone, message)

        return OtpIssue(code=code, record=record)

    async def resend(self, phone: str) -> OtpIssue:
        """Same as issue(): a brand-new record, so the attempt counter restarts."""
        return await self.issue(phone)

    async def verify(self, phone: str, code: str) -> OtpVerification:
        """Check ``code`` against the pending record for ``phone``."""
        for attempt in range(1, VERIFY_CONFLICT_RETRIES + 1):
            try:
                result = await self._verify_once(phone, code)
                await self.session.commit()
                return result
            except StaleDataError:
                await self.session.rollback()
                logger.info(
                    f"OTP verify conflict for {mask_phone(phone)} "
                    f"(attempt {attempt}/{VERIFY_CONFLICT_RETRIES}), retrying"
                )
        raise OtpConflictError(
            f"OTP record for {mask_phone(phone)} is under concurrent verification"
        )

    async def _verify_once(self, phone: str, code: str) -> OtpVerification:
        record = await self.store.latest_unverified(phone, lock=True)
        if record is None:
            return OtpVerification(failure=AuthFailure.NOT_FOUND)

        if self.clock() > as_utc(record.expires_at):
            if self.policy.count_expired_attempts:
                record.attempts += 1
                await self.session.flush()
            return OtpVerification(failure=AuthFailure.EXPIRED, record=record)

        if record.attempts >= self.policy.max_attempts:
            return OtpVerification(failure=AuthFailure.EXHAUSTED, record=record)

        if not secrets.compare_digest(record.code.encode(), code.encode()):
            record.attempts += 1
            await self.session.flush()
            logger.info(
                f"OTP mismatch for {mask_phone(phone)} "
                f"({record.attempts}/{self.policy.max_attempts} attempts used)"
            )
            if record.attempts >= self.policy.max_attempts:
                return OtpVerification(failure=AuthFailure.EXHAUSTED, record=record)
            return OtpVerification(failure=AuthFailure.MISMATCH, record=record)

        record.verified = True
        await self.session.flush()
        logger.info(f"OTP verified for {mask_phone(phone)}")
        return OtpVerification(record=record)

    async def purge_expired(self) -> int:
        """Delete records past their expiry. Returns count removed."""
        removed = await self.store.delete_expired(self.clock())
        await self.session.commit()
        return removed
