"""Principal lookup and login-time registration."""

import logging
import uuid
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from phoneauth.core.clock import Clock, utcnow
from phoneauth.models.principal import Principal, PrincipalKind

logger = logging.getLogger(__name__)


class PrincipalLookup(Protocol):
    """Resolves the identifier carried by a token into a full principal."""

    async def by_id(self, principal_id: uuid.UUID) -> Principal | None: ...


class DisplayNameRequiredError(Exception):
    """A first login needs a display name to create the account."""

    pass


@dataclass
class LoginPrincipal:
    principal: Principal
    is_new: bool


class PrincipalService:
    """Service for principal operations."""

    def __init__(self, session: AsyncSession, clock: Clock = utcnow):
        self.session = session
        self.clock = clock

    async def by_id(self, principal_id: uuid.UUID) -> Principal | None:
        result = await self.session.execute(select(Principal).where(Principal.id == principal_id))
        return result.scalar_one_or_none()

    async def by_phone(
        self, phone: str, kind: PrincipalKind = PrincipalKind.CUSTOMER
    ) -> Principal | None:
        result = await self.session.execute(
            select(Principal).where(Principal.phone == phone, Principal.kind == kind)
        )
        return result.scalar_one_or_none()

    async def resolve_for_login(
        self,
        phone: str,
        kind: PrincipalKind = PrincipalKind.CUSTOMER,
        display_name: str | None = None,
    ) -> LoginPrincipal:
        """Return the principal for a freshly verified phone, creating it if needed.

        Raises DisplayNameRequiredError when the phone has no account yet and
        no display name was supplied.
        """
        principal = await self.by_phone(phone, kind)
        is_new = principal is None

        if principal is None:
            name = (display_name or "").strip()
            if not name:
                raise DisplayNameRequiredError("Display name is required for new accounts")
            principal = Principal(phone=phone, display_name=name, kind=kind, is_active=True)
            self.session.add(principal)
            logger.info(f"Registered new {kind.value} principal")

        principal.last_login_at = self.clock()
        await self.session.commit()
        await self.session.refresh(principal)
        return LoginPrincipal(principal=principal, is_new=is_new)
