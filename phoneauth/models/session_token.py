"""Session tokens issued after a successful OTP verification."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from phoneauth.models.base import BaseModel


class SessionToken(BaseModel):
    """A bearer token bound to a principal.

    A principal may hold several live tokens (one per device). Rows are
    only ever mutated to flip ``revoked`` (logout, forced sign-out) or
    ``expired`` (set by the sweeper once ``expires_at`` has passed).
    """

    __tablename__ = "session_tokens"

    token_value: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    issued_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    revoked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    expired: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Short fingerprint for logs; never log the token itself
    jti: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<SessionToken {self.jti} owner={self.owner_id} revoked={self.revoked}>"
