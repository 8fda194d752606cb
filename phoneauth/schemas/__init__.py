# phoneauth Pydantic Schemas
from phoneauth.schemas.otp import (
    LoginResponse,
    OtpErrorResponse,
    OtpSendRequest,
    OtpSendResponse,
    OtpVerifyRequest,
)
from phoneauth.schemas.session import (
    BlacklistRequest,
    BlacklistResponse,
    LogoutAllResponse,
    LogoutResponse,
    PrincipalResponse,
)

__all__ = [
    # OTP
    "LoginResponse",
    "OtpErrorResponse",
    "OtpSendRequest",
    "OtpSendResponse",
    "OtpVerifyRequest",
    # Session
    "BlacklistRequest",
    "BlacklistResponse",
    "LogoutAllResponse",
    "LogoutResponse",
    "PrincipalResponse",
]
