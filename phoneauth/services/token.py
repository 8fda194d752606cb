"""Token engine - mints, validates and revokes session bearer tokens."""

import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import jwt
from jwt.exceptions import PyJWTError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from phoneauth.core.clock import Clock, as_utc, utcnow
from phoneauth.core.config import settings
from phoneauth.models.principal import Principal
from phoneauth.models.session_token import SessionToken
from phoneauth.services.results import AuthFailure, TokenCheck
from phoneauth.services.token_store import BlacklistStore, TokenStore

logger = logging.getLogger(__name__)

_REQUIRED_CLAIMS = ["sub", "exp", "iat", "jti"]


@dataclass
class IssuedToken:
    """A freshly minted bearer token and its stored row."""

    token: str
    session_token: SessionToken

    @property
    def expires_in(self) -> int:
        row = self.session_token
        return int((as_utc(row.expires_at) - as_utc(row.issued_at)).total_seconds())


class TokenEngine:
    """Session token lifecycle.

    A token is accepted only if its signature verifies, a matching row
    exists in ``session_tokens``, that row is neither revoked nor expired,
    and the token is absent from ``token_blacklist``. All four checks run
    on every call.
    """

    def __init__(
        self,
        session: AsyncSession,
        *,
        secret_key: str | None = None,
        algorithm: str | None = None,
        lifetime: timedelta | None = None,
        clock: Clock = utcnow,
    ):
        self.session = session
        self.tokens = TokenStore(session)
        self.blacklist_store = BlacklistStore(session)
        self.secret_key = secret_key or settings.effective_jwt_secret_key
        self.algorithm = algorithm or settings.jwt_algorithm
        self.lifetime = lifetime or timedelta(days=settings.session_token_expire_days)
        self.clock = clock

    def _encode(self, principal: Principal, jti: str) -> tuple[str, dict[str, Any]]:
        now = self.clock()
        payload = {
            "sub": str(principal.id),
            "phone": principal.phone,
            "kind": principal.kind.value,
            "iat": now,
            "exp": now + self.lifetime,
            "jti": jti,
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        # PyJWT 2.x returns str; older type stubs may declare bytes
        return str(token), payload

    def decode(self, token: str) -> dict[str, Any]:
        """Verify the signature and return the claims.

        Expiry is judged against the engine clock in is_valid(), not by
        PyJWT, so only the signature and claim presence are checked here.
        """
        return jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            options={"verify_exp": False, "verify_iat": False, "require": _REQUIRED_CLAIMS},
        )

    async def issue_token(self, principal: Principal) -> IssuedToken:
        """Mint a token for ``principal`` and record it. Other sessions stay live."""
        jti = secrets.token_hex(16)
        token, payload = self._encode(principal, jti)
        row = await self.tokens.add(
            SessionToken(
                token_value=token,
                owner_id=principal.id,
                issued_at=payload["iat"],
                expires_at=payload["exp"],
                jti=jti,
                revoked=False,
                expired=False,
            )
        )
        await self.session.commit()
        logger.info(f"Issued session token {jti} for principal {principal.id}")
        return IssuedToken(token=token, session_token=row)

    async def is_valid(self, token: str) -> TokenCheck:
        """Decide whether ``token`` may authenticate a request."""
        try:
            claims = self.decode(token)
            principal_id = uuid.UUID(str(claims["sub"]))
        except (PyJWTError, ValueError) as e:
            logger.debug(f"Token rejected: bad signature or claims ({e})")
            return TokenCheck(failure=AuthFailure.INVALID_SIGNATURE)

        row = await self.tokens.get_by_value(token)
        if row is None or row.owner_id != principal_id:
            logger.info(f"Token {claims.get('jti')} rejected: not issued or already purged")
            return TokenCheck(failure=AuthFailure.NOT_RECOGNIZED)

        now = self.clock()
        if (
            row.revoked
            or row.expired
            or now >= as_utc(row.expires_at)
            or now.timestamp() >= float(claims["exp"])
        ):
            return TokenCheck(failure=AuthFailure.REVOKED_OR_EXPIRED)

        if await self.blacklist_store.contains(token):
            logger.info(f"Token {row.jti} rejected: blacklisted")
            return TokenCheck(failure=AuthFailure.REVOKED_OR_EXPIRED)

        return TokenCheck(principal_id=principal_id, claims=claims)

    async def revoke(self, token: str) -> bool:
        """Logout: flag the stored token revoked. False if it was never stored."""
        revoked = await self.tokens.revoke(token, self.clock())
        await self.session.commit()
        if revoked:
            logger.info("Session token revoked")
        return revoked

    async def revoke_all(self, owner_id: uuid.UUID) -> int:
        """Forced sign-out of every device of a principal."""
        count = await self.tokens.revoke_owner(owner_id, self.clock())
        await self.session.commit()
        logger.info(f"Revoked {count} session tokens for principal {owner_id}")
        return count

    async def blacklist(self, token: str) -> bool:
        """Deny a token without touching (or needing) its session_tokens row.

        Returns False when the token was already blacklisted.
        """
        try:
            added = await self.blacklist_store.add(token, self.clock())
            await self.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent blacklist of the same token
            await self.session.rollback()
            return False
        if added:
            logger.info("Token added to blacklist")
        return added

    async def mark_expired(self) -> int:
        count = await self.tokens.mark_expired(self.clock())
        await self.session.commit()
        return count

    async def purge_expired(self, grace: timedelta) -> int:
        """Delete tokens whose expiry is more than ``grace`` in the past."""
        count = await self.tokens.delete_expired_before(self.clock() - grace)
        await self.session.commit()
        return count

    async def purge_blacklist(self, retention: timedelta) -> int:
        """Delete blacklist entries older than ``retention``."""
        count = await self.blacklist_store.delete_older_than(self.clock() - retention)
        await self.session.commit()
        return count
