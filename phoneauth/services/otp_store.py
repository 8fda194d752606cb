"""Persistence for one-time code records."""

from datetime import datetime
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from phoneauth.models.otp_record import OtpRecord


class OtpStore:
    """Queries over ``otp_records``. Callers own the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def delete_unverified(self, phone: str) -> int:
        """Remove every unverified record for a phone. Returns count removed."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(OtpRecord).where(OtpRecord.phone == phone, OtpRecord.verified.is_(False))
        )
        return result.rowcount

    async def add(self, record: OtpRecord) -> OtpRecord:
        self.session.add(record)
        await self.session.flush()
        return record

    async def latest_unverified(self, phone: str, *, lock: bool = False) -> OtpRecord | None:
        """Most recent unverified record for a phone.

        With ``lock=True`` the row is selected FOR UPDATE (a no-op on SQLite,
        where the record's version column still serializes writers) and
        always re-read from the database rather than the identity map.
        """
        stmt = (
            select(OtpRecord)
            .where(OtpRecord.phone == phone, OtpRecord.verified.is_(False))
            .order_by(OtpRecord.created_at.desc())
            .limit(1)
        )
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def delete_expired(self, now: datetime) -> int:
        """Garbage-collect records past their expiry. Returns count removed."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(OtpRecord)
            .where(OtpRecord.expires_at < now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
