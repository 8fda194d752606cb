"""One-time code records, many per phone over time."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from phoneauth.models.base import BaseModel


class OtpRecord(BaseModel):
    """An issued one-time code.

    At most one unverified record per phone is actionable: issuing a new
    code deletes every unverified record for that phone first. Once
    ``verified`` is set the row is never written again.

    ``version`` backs SQLAlchemy's optimistic concurrency check so two
    concurrent verifications cannot both consume the same attempt.
    """

    __tablename__ = "otp_records"

    __table_args__ = (
        Index("ix_otp_records_phone_verified_created", "phone", "verified", "created_at"),
    )

    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(10), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<OtpRecord {self.id} attempts={self.attempts} verified={self.verified}>"
