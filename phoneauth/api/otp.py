"""OTP login API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse

from phoneauth.api.deps import get_otp_engine, get_principal_service, get_token_engine
from phoneauth.core.config import settings
from phoneauth.core.logging import mask_phone
from phoneauth.core.request_utils import get_client_ip
from phoneauth.schemas.otp import (
    LoginResponse,
    OtpErrorResponse,
    OtpSendRequest,
    OtpSendResponse,
    OtpVerifyRequest,
)
from phoneauth.services.otp import OtpEngine
from phoneauth.services.principal import DisplayNameRequiredError, PrincipalService
from phoneauth.services.results import AuthFailure
from phoneauth.services.send_limiter import get_send_limiter
from phoneauth.services.token import TokenEngine

logger = logging.getLogger(__name__)

# Many phones can sit behind one NAT, so the IP allowance is wider
_IP_LIMIT_MULTIPLIER = 4


def _check_send_rate_limit(key: str, limit: int) -> None:
    """Check if a phone or client IP has exceeded the send rate limit."""
    if not get_send_limiter().allows(key, limit):
        logger.warning("OTP send rate limit exceeded for %s", key.split(":", 1)[0])
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many OTP requests. Please try again later.",
        )


router = APIRouter(prefix="/otp", tags=["otp"])

_SEND_RESPONSES: dict[int | str, dict] = {
    status.HTTP_429_TOO_MANY_REQUESTS: {"description": "Send rate limit exceeded"},
}


async def _send(request: Request, phone: str, otp_engine: OtpEngine) -> OtpSendResponse:
    phone_key = f"phone:{phone}"
    ip_key = f"ip:{get_client_ip(request) or 'unknown'}"
    _check_send_rate_limit(phone_key, settings.otp_send_limit)
    _check_send_rate_limit(ip_key, settings.otp_send_limit * _IP_LIMIT_MULTIPLIER)
    limiter = get_send_limiter()
    limiter.record(phone_key)
    limiter.record(ip_key)

    issued = await otp_engine.issue(phone)
    return OtpSendResponse(
        message="OTP sent successfully",
        code=issued.code if settings.expose_otp_code else None,
    )


@router.post(
    "/send",
    response_model=OtpSendResponse,
    response_model_exclude_none=True,
    responses=_SEND_RESPONSES,
)
async def send_otp(
    body: OtpSendRequest,
    request: Request,
    otp_engine: OtpEngine = Depends(get_otp_engine),
) -> OtpSendResponse:
    """Issue a login code for a phone number, replacing any pending one.

    The response is the same whether or not the phone has an account.
    """
    return await _send(request, body.phone, otp_engine)


@router.post(
    "/resend",
    response_model=OtpSendResponse,
    response_model_exclude_none=True,
    responses=_SEND_RESPONSES,
)
async def resend_otp(
    body: OtpSendRequest,
    request: Request,
    otp_engine: OtpEngine = Depends(get_otp_engine),
) -> OtpSendResponse:
    """Issue a fresh code. The attempt counter starts over."""
    return await _send(request, body.phone, otp_engine)


def _otp_error(status_code: int, detail: str, error: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail, "error": error})


@router.post(
    "/verify",
    response_model=LoginResponse,
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": OtpErrorResponse},
        status.HTTP_403_FORBIDDEN: {"description": "Account is deactivated"},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": OtpErrorResponse},
    },
)
async def verify_otp(
    body: OtpVerifyRequest,
    otp_engine: OtpEngine = Depends(get_otp_engine),
    principals: PrincipalService = Depends(get_principal_service),
    tokens: TokenEngine = Depends(get_token_engine),
) -> LoginResponse | JSONResponse:
    """Verify a code and return a session token.

    The first successful login for a phone creates the account and needs a
    display_name. Other sessions of the same principal stay valid.
    """
    result = await otp_engine.verify(body.phone, body.code)
    if not result.ok:
        failure = result.failure or AuthFailure.NOT_FOUND
        status_code = (
            status.HTTP_429_TOO_MANY_REQUESTS
            if failure is AuthFailure.EXHAUSTED
            else status.HTTP_400_BAD_REQUEST
        )
        return _otp_error(status_code, result.message, failure.value)

    try:
        login = await principals.resolve_for_login(body.phone, body.kind, body.display_name)
    except DisplayNameRequiredError as e:
        return _otp_error(status.HTTP_400_BAD_REQUEST, str(e), "display_name_required")

    principal = login.principal
    if not principal.is_active:
        logger.warning(f"Login refused for deactivated principal {principal.id}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    issued = await tokens.issue_token(principal)
    logger.info(f"Login for {mask_phone(principal.phone)} ({principal.kind.value})")

    return LoginResponse(
        token=issued.token,
        expires_in=issued.expires_in,
        principal_id=principal.id,
        display_name=principal.display_name,
        phone=principal.phone,
        kind=principal.kind,
        is_new=login.is_new,
    )
