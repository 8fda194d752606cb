"""Pydantic schemas for session management."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from phoneauth.models.principal import PrincipalKind


class LogoutResponse(BaseModel):
    ok: bool = True
    message: str = "Logged out"


class LogoutAllResponse(BaseModel):
    ok: bool = True
    revoked: int = Field(description="Number of session tokens revoked")


class PrincipalResponse(BaseModel):
    """The authenticated principal."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    phone: str
    display_name: str
    kind: PrincipalKind
    is_active: bool
    last_login_at: datetime | None
    created_at: datetime


class BlacklistRequest(BaseModel):
    token: str = Field(..., min_length=1)


class BlacklistResponse(BaseModel):
    ok: bool = True
    added: bool = Field(description="False if the token was already blacklisted")
