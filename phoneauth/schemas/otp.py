"""Pydantic schemas for the OTP login API."""

from uuid import UUID

from pydantic import BaseModel, Field

from phoneauth.models.principal import PrincipalKind

PHONE_PATTERN = r"^\+?[0-9]{7,15}$"


class OtpSendRequest(BaseModel):
    """Request a code for a phone number (also used for resend)."""

    phone: str = Field(
        ...,
        pattern=PHONE_PATTERN,
        description="Phone number, digits only with an optional leading +",
    )


class OtpSendResponse(BaseModel):
    message: str
    code: str | None = Field(
        None,
        description="The issued code. Only present when ENVIRONMENT=development",
    )


class OtpVerifyRequest(BaseModel):
    """Verify a code and log in."""

    phone: str = Field(..., pattern=PHONE_PATTERN)
    code: str = Field(..., min_length=4, max_length=10, pattern=r"^[0-9]+$")
    kind: PrincipalKind = PrincipalKind.CUSTOMER
    display_name: str | None = Field(
        None,
        max_length=255,
        description="Required the first time a phone number logs in",
    )


class OtpErrorResponse(BaseModel):
    """Body of a refused verification."""

    detail: str
    error: str = Field(description="Machine readable failure kind")


class LoginResponse(BaseModel):
    """Issued session token and the principal it belongs to."""

    token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Token lifetime in seconds")
    principal_id: UUID
    display_name: str
    phone: str
    kind: PrincipalKind
    is_new: bool = Field(description="True if this login created the account")
