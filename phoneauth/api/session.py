"""Session management API endpoints."""

import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status

from phoneauth.api.deps import get_current_principal, get_token_engine
from phoneauth.core.request_utils import extract_bearer_token
from phoneauth.models.principal import Principal
from phoneauth.schemas.session import LogoutAllResponse, LogoutResponse, PrincipalResponse
from phoneauth.services.results import AuthFailure
from phoneauth.services.token import TokenEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/session", tags=["session"])


@router.post(
    "/logout",
    response_model=LogoutResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"description": "Token missing or unknown"},
        status.HTTP_401_UNAUTHORIZED: {"description": "Token invalid, revoked or expired"},
    },
)
async def logout(
    authorization: str | None = Header(default=None),
    tokens: TokenEngine = Depends(get_token_engine),
) -> LogoutResponse:
    """Revoke the token presented in the Authorization header.

    Only that token is revoked; the principal's other devices stay logged in.
    """
    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid token",
        )

    check = await tokens.is_valid(token)
    if check.failure == AuthFailure.NOT_RECOGNIZED:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Token not found",
        )
    if not check.ok:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=check.message,
            headers={"WWW-Authenticate": "Bearer"},
        )

    await tokens.revoke(token)
    return LogoutResponse()


@router.post("/logout-all", response_model=LogoutAllResponse)
async def logout_all(
    principal: Principal = Depends(get_current_principal),
    tokens: TokenEngine = Depends(get_token_engine),
) -> LogoutAllResponse:
    """Revoke every session of the current principal, this one included."""
    revoked = await tokens.revoke_all(principal.id)
    return LogoutAllResponse(revoked=revoked)


@router.get("/me", response_model=PrincipalResponse)
async def get_me(principal: Principal = Depends(get_current_principal)) -> PrincipalResponse:
    return PrincipalResponse.model_validate(principal)
