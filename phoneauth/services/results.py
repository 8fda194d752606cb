"""Typed outcomes of OTP verification and token validation.

Authentication failures are ordinary return values. Only infrastructure
problems (database unreachable, unresolvable write conflicts) raise.
"""

import enum
import uuid
from dataclasses import dataclass, field
from typing import Any

from phoneauth.models.otp_record import OtpRecord


class AuthFailure(str, enum.Enum):
    """Why an OTP or a bearer token was refused."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    MISMATCH = "mismatch"
    INVALID_SIGNATURE = "invalid_signature"
    NOT_RECOGNIZED = "not_recognized"
    REVOKED_OR_EXPIRED = "revoked_or_expired"


# Client-facing wording; none of these reveal whether a phone is registered
FAILURE_MESSAGES: dict[AuthFailure, str] = {
    AuthFailure.NOT_FOUND: "No active OTP for this number. Request a new code.",
    AuthFailure.EXPIRED: "OTP expired. Request a new code.",
    AuthFailure.EXHAUSTED: "Too many incorrect attempts. Request a new code.",
    AuthFailure.MISMATCH: "Invalid OTP.",
    AuthFailure.INVALID_SIGNATURE: "Invalid token.",
    AuthFailure.NOT_RECOGNIZED: "Token not recognized. Please log in.",
    AuthFailure.REVOKED_OR_EXPIRED: "Token revoked or expired. Please log in again.",
}


@dataclass
class OtpVerification:
    """Result of OtpEngine.verify()."""

    failure: AuthFailure | None = None
    record: OtpRecord | None = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def message(self) -> str:
        if self.failure is None:
            return "OTP verified."
        return FAILURE_MESSAGES[self.failure]


@dataclass
class TokenCheck:
    """Result of TokenEngine.is_valid()."""

    failure: AuthFailure | None = None
    principal_id: uuid.UUID | None = None
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def message(self) -> str:
        if self.failure is None:
            return "Token valid."
        return FAILURE_MESSAGES[self.failure]
