"""Bearer token authentication middleware.

Runs before every non-exempt request:

- no Authorization header: the request continues anonymously and the
  handler decides whether that is acceptable
- a header that is not ``Bearer <token>``, or a token the TokenEngine
  refuses: 401 with a short reason
- a valid token: an AuthContext is bound to ``request.state.auth``

The middleware never rejects a request for lacking credentials, only for
presenting bad ones.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from fastapi import Request, Response
from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import JSONResponse

from phoneauth.core.clock import utcnow
from phoneauth.core.database import async_session_maker
from phoneauth.core.request_utils import extract_bearer_token
from phoneauth.services.token import TokenEngine

logger = logging.getLogger(__name__)

# Paths that never look at the Authorization header. Login must work even
# when the client still holds a stale token.
EXEMPT_PATHS = [
    "/health",
    "/otp",
    "/internal",  # Has its own service-key auth
    "/session/logout",  # Reports unknown tokens itself
]

MALFORMED_HEADER_DETAIL = "Malformed Authorization header. Expected: Bearer <token>"


@dataclass(frozen=True)
class AuthContext:
    """Who is calling, as established by a validated bearer token."""

    principal_id: uuid.UUID
    token: str
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass
class AuthOutcome:
    """Result of authenticating one request.

    Anonymous requests have neither a context nor a rejection.
    """

    context: AuthContext | None = None
    rejection: str | None = None

    @property
    def anonymous(self) -> bool:
        return self.context is None and self.rejection is None


def is_exempt(path: str) -> bool:
    """Exact or segment-boundary match against EXEMPT_PATHS."""
    return any(path == p or path.startswith(p + "/") for p in EXEMPT_PATHS)


async def authenticate_request(authorization: str | None, tokens: TokenEngine) -> AuthOutcome:
    """Decide what an Authorization header value is worth."""
    if authorization is None:
        return AuthOutcome()

    token = extract_bearer_token(authorization)
    if token is None:
        return AuthOutcome(rejection=MALFORMED_HEADER_DETAIL)

    check = await tokens.is_valid(token)
    if not check.ok or check.principal_id is None:
        return AuthOutcome(rejection=check.message)

    return AuthOutcome(
        context=AuthContext(principal_id=check.principal_id, token=token, claims=check.claims)
    )


def _unauthorized(detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": detail},
        headers={"WWW-Authenticate": "Bearer"},
    )


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Validate bearer tokens and bind the caller to the request.

    Uses ``app.state.session_maker`` and ``app.state.clock`` when present so
    tests can point it at their own database and time source.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.auth = None
        path = request.url.path

        # CORS preflight never carries credentials
        if request.method == "OPTIONS" or is_exempt(path):
            return await call_next(request)

        authorization = request.headers.get("Authorization")
        if authorization is None:
            return await call_next(request)

        session_maker = getattr(request.app.state, "session_maker", async_session_maker)
        clock = getattr(request.app.state, "clock", utcnow)

        try:
            async with session_maker() as db:
                outcome = await authenticate_request(authorization, TokenEngine(db, clock=clock))
        except (OperationalError, InterfaceError, DBAPIError):
            logger.exception(f"Token store unavailable for: {request.method} {path}")
            return JSONResponse(
                status_code=503,
                content={"detail": "Service temporarily unavailable"},
            )

        if outcome.rejection is not None:
            logger.warning(
                f"Rejected bearer token for: {request.method} {path} - {outcome.rejection}"
            )
            return _unauthorized(outcome.rejection)

        request.state.auth = outcome.context
        return await call_next(request)
