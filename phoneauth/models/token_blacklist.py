"""Blacklisted session tokens, independent of the session_tokens table."""

from datetime import datetime

from sqlalchemy import DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from phoneauth.core.clock import utcnow
from phoneauth.core.database import Base


class TokenBlacklist(Base):
    """A token invalidated outside the primary revocation path.

    Append-only. Entries are pruned once older than the maximum token
    lifetime, when the token they name has expired on its own.
    """

    __tablename__ = "token_blacklist"

    token_value: Mapped[str] = mapped_column(Text, primary_key=True)
    blacklisted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False, index=True
    )
