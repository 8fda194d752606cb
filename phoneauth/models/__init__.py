# phoneauth Models
from phoneauth.models.base import BaseModel
from phoneauth.models.otp_record import OtpRecord
from phoneauth.models.principal import Principal, PrincipalKind
from phoneauth.models.session_token import SessionToken
from phoneauth.models.token_blacklist import TokenBlacklist

__all__ = [
    "BaseModel",
    "OtpRecord",
    "Principal",
    "PrincipalKind",
    "SessionToken",
    "TokenBlacklist",
]
