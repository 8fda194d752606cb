"""Principal model - the seller or customer a session belongs to."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from phoneauth.models.base import BaseModel


class PrincipalKind(str, enum.Enum):
    SELLER = "seller"
    CUSTOMER = "customer"


class Principal(BaseModel):
    """A phone-number-only identity.

    Created on the first successful OTP verification for a phone. There is
    no password; holding a valid session token is the only credential.
    """

    __tablename__ = "principals"

    # One seller and one customer account may share a phone number
    __table_args__ = (UniqueConstraint("phone", "kind", name="uq_principals_phone_kind"),)

    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[PrincipalKind] = mapped_column(
        Enum(PrincipalKind, name="principal_kind", values_callable=lambda e: [m.value for m in e]),
        default=PrincipalKind.CUSTOMER,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    last_login_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<Principal {self.kind.value} {self.id}>"
