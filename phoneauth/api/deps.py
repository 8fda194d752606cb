"""Shared FastAPI dependencies for the auth routers."""

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from phoneauth.core.clock import Clock, utcnow
from phoneauth.core.database import get_db
from phoneauth.middleware.bearer_auth import AuthContext
from phoneauth.models.principal import Principal
from phoneauth.services.delivery import get_delivery_dispatcher
from phoneauth.services.otp import OtpEngine
from phoneauth.services.principal import PrincipalLookup, PrincipalService
from phoneauth.services.token import TokenEngine


def get_clock(request: Request) -> Clock:
    return getattr(request.app.state, "clock", utcnow)


def get_otp_engine(
    request: Request,
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> OtpEngine:
    """Dependency to get the OTP engine wired to the app's dispatcher."""
    dispatcher = getattr(request.app.state, "dispatcher", None) or get_delivery_dispatcher()
    return OtpEngine(db, dispatcher=dispatcher, clock=clock)


def get_token_engine(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> TokenEngine:
    return TokenEngine(db, clock=clock)


def get_principal_service(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> PrincipalService:
    return PrincipalService(db, clock=clock)


def get_auth_context(request: Request) -> AuthContext | None:
    """The caller bound by BearerAuthMiddleware, or None when anonymous."""
    return getattr(request.state, "auth", None)


async def get_current_principal(
    auth: AuthContext | None = Depends(get_auth_context),
    principals: PrincipalLookup = Depends(get_principal_service),
) -> Principal:
    """Dependency to get the authenticated principal. 401 when anonymous."""
    if auth is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    principal = await principals.by_id(auth.principal_id)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token not recognized. Please log in.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not principal.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Account is deactivated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal

