"""Persistence for session tokens and the token blacklist."""

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import delete, select, update
from sqlalchemy.engine import CursorResult
from sqlalchemy.ext.asyncio import AsyncSession

from phoneauth.models.session_token import SessionToken
from phoneauth.models.token_blacklist import TokenBlacklist


class TokenStore:
    """Queries over ``session_tokens``. Callers own the transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, token: SessionToken) -> SessionToken:
        self.session.add(token)
        await self.session.flush()
        return token

    async def get_by_value(self, token_value: str) -> SessionToken | None:
        """Fetch a token row, always from the database (never a cached copy)."""
        result = await self.session.execute(
            select(SessionToken)
            .where(SessionToken.token_value == token_value)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def revoke(self, token_value: str, now: datetime) -> bool:
        """Flag one token revoked. Returns False if no such token exists."""
        token = await self.get_by_value(token_value)
        if token is None:
            return False
        if not token.revoked:
            token.revoked = True
            token.revoked_at = now
            await self.session.flush()
        return True

    async def revoke_owner(self, owner_id: uuid.UUID, now: datetime) -> int:
        """Revoke every live token of a principal. Returns count revoked."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            update(SessionToken)
            .where(SessionToken.owner_id == owner_id, SessionToken.revoked.is_(False))
            .values(revoked=True, revoked_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def mark_expired(self, now: datetime) -> int:
        """Materialize time-based expiry on the ``expired`` flag."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            update(SessionToken)
            .where(SessionToken.expires_at < now, SessionToken.expired.is_(False))
            .values(expired=True)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def delete_expired_before(self, cutoff: datetime) -> int:
        """Purge tokens that expired before ``cutoff``."""
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(SessionToken)
            .where(SessionToken.expires_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class BlacklistStore:
    """Queries over ``token_blacklist``. Append-only apart from pruning."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, token_value: str, now: datetime) -> bool:
        """Blacklist a token. Returns False if it was already listed."""
        if await self.contains(token_value):
            return False
        self.session.add(TokenBlacklist(token_value=token_value, blacklisted_at=now))
        await self.session.flush()
        return True

    async def contains(self, token_value: str) -> bool:
        result = await self.session.execute(
            select(TokenBlacklist.token_value).where(TokenBlacklist.token_value == token_value)
        )
        return result.scalar_one_or_none() is not None

    async def delete_older_than(self, cutoff: datetime) -> int:
        result: CursorResult[Any] = await self.session.execute(  # type: ignore[assignment]
            delete(TokenBlacklist)
            .where(TokenBlacklist.blacklisted_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount
