"""Initial schema with principals, OTP records, session tokens and the blacklist.

Revision ID: 0001
Revises:
Create Date: 2026-10-19 10:00:00

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    principal_kind = sa.Enum("seller", "customer", name="principal_kind")

    op.create_table(
        "principals",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("display_name", sa.String(255), nullable=False),
        sa.Column("kind", principal_kind, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("phone", "kind", name="uq_principals_phone_kind"),
    )
    op.create_index("ix_principals_phone", "principals", ["phone"])

    op.create_table(
        "otp_records",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("code", sa.String(10), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("verified", sa.Boolean(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_otp_records_phone", "otp_records", ["phone"])
    op.create_index("ix_otp_records_expires_at", "otp_records", ["expires_at"])
    op.create_index(
        "ix_otp_records_phone_verified_created",
        "otp_records",
        ["phone", "verified", "created_at"],
    )

    op.create_table(
        "session_tokens",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("token_value", sa.Text(), nullable=False, unique=True),
        sa.Column("owner_id", sa.Uuid(), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("revoked", sa.Boolean(), nullable=False),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expired", sa.Boolean(), nullable=False),
        sa.Column("jti", sa.String(64), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_session_tokens_owner_id", "session_tokens", ["owner_id"])
    op.create_index("ix_session_tokens_expires_at", "session_tokens", ["expires_at"])
    op.create_index("ix_session_tokens_jti", "session_tokens", ["jti"])

    op.create_table(
        "token_blacklist",
        sa.Column("token_value", sa.Text(), primary_key=True),
        sa.Column("blacklisted_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_token_blacklist_blacklisted_at", "token_blacklist", ["blacklisted_at"])


def downgrade() -> None:
    op.drop_table("token_blacklist")
    op.drop_table("session_tokens")
    op.drop_table("otp_records")
    op.drop_table("principals")
    sa.Enum(name="principal_kind").drop(op.get_bind(), checkfirst=True)
