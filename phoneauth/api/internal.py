"""Internal endpoints for service-to-service communication.

Excluded from bearer session auth. Callers present INTERNAL_API_KEY as a
Bearer token instead; when the key is not configured every call is refused.
"""

import logging
import secrets

from fastapi import APIRouter, Depends, Header, HTTPException, status

from phoneauth.api.deps import get_token_engine
from phoneauth.core.config import settings
from phoneauth.core.request_utils import extract_bearer_token
from phoneauth.schemas.session import BlacklistRequest, BlacklistResponse
from phoneauth.services.token import TokenEngine

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["internal"])


async def verify_internal_auth(
    authorization: str | None = Header(default=None),
) -> None:
    """Verify internal service-to-service authentication."""
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing Authorization header",
        )
    token = extract_bearer_token(authorization)
    if token is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid Authorization header format",
        )

    expected_key = settings.internal_api_key
    if not expected_key:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Internal auth not configured",
        )

    if not secrets.compare_digest(token.encode(), expected_key.encode()):
        logger.warning("Rejected internal call with an invalid key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid internal auth token",
        )


@router.post("/tokens/blacklist", response_model=BlacklistResponse)
async def blacklist_token(
    body: BlacklistRequest,
    _auth: None = Depends(verify_internal_auth),
    tokens: TokenEngine = Depends(get_token_engine),
) -> BlacklistResponse:
    """Deny a token everywhere, whether or not this service issued it."""
    added = await tokens.blacklist(body.token)
    return BlacklistResponse(added=added)
