"""Create passkey relying-party tables.

Accounts, credentials, pending challenges, fixed-window rate-limit
counters, one-time login tokens and the audit log.

Revision ID: 001_passkey_auth
Revises:
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

# revision identifiers, used by Alembic.
revision: str = "001_passkey_auth"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.func.now(),
    )


def upgrade() -> None:
    """Create all passkey tables."""
    op.create_table(
        "user_account",
        sa.Column("id", UUID(as_uuid=False), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.PrimaryKeyConstraint("id", name="pk_user_account"),
        sa.UniqueConstraint("email", name="uq_user_account_email"),
    )
    op.create_index("ix_user_account_email", "user_account", ["email"])

    op.create_table(
        "passkey_credential",
        sa.Column("id", sa.Text(), nullable=False),
        sa.Column("user_id", UUID(as_uuid=False), nullable=False),
        sa.Column("webauthn_user_id", sa.Text(), nullable=False),
        sa.Column("public_key", sa.LargeBinary(), nullable=False),
        sa.Column("counter", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column(
            "device_type", sa.String(20), nullable=False, server_default="singleDevice"
        ),
        sa.Column("backed_up", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("transports", JSONB(), nullable=True),
        sa.Column("authenticator_name", sa.String(255), nullable=True),
        sa.Column("aaguid", sa.String(36), nullable=True),
        _created_at(),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_passkey_credential"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["user_account.id"],
            name="fk_passkey_credential_user_id_user_account",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("id", "user_id", name="uq_passkey_credential_id_user_id"),
    )
    op.create_index("ix_passkey_credential_user_id", "passkey_credential", ["user_id"])
    op.create_index(
        "ix_passkey_credential_webauthn_user_id", "passkey_credential", ["webauthn_user_id"]
    )

    op.create_table(
        "passkey_challenge",
        sa.Column("id", UUID(as_uuid=False), nullable=False),
        sa.Column("challenge", sa.Text(), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("webauthn_user_id", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_passkey_challenge"),
        sa.UniqueConstraint("challenge", name="uq_passkey_challenge_challenge"),
    )
    op.create_index("ix_passkey_challenge_expires_at", "passkey_challenge", ["expires_at"])

    op.create_table(
        "passkey_rate_limit",
        sa.Column("id", UUID(as_uuid=False), nullable=False),
        sa.Column("identifier", sa.String(255), nullable=False),
        sa.Column("identifier_type", sa.String(10), nullable=False),
        sa.Column("endpoint", sa.String(50), nullable=False),
        sa.Column("window_start", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="1"),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_passkey_rate_limit"),
        sa.UniqueConstraint(
            "identifier",
            "identifier_type",
            "endpoint",
            "window_start",
            name="uq_passkey_rate_limit_window",
        ),
    )
    op.create_index(
        "ix_passkey_rate_limit_window_start", "passkey_rate_limit", ["window_start"]
    )

    op.create_table(
        "login_token",
        sa.Column("id", UUID(as_uuid=False), nullable=False),
        sa.Column("user_id", UUID(as_uuid=False), nullable=False),
        sa.Column("token_hash", sa.String(64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_login_token"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["user_account.id"],
            name="fk_login_token_user_id_user_account",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint("token_hash", name="uq_login_token_token_hash"),
    )
    op.create_index("ix_login_token_user_id", "login_token", ["user_id"])

    op.create_table(
        "passkey_audit_log",
        sa.Column("id", UUID(as_uuid=False), nullable=False),
        sa.Column("event_type", sa.String(40), nullable=False),
        sa.Column("user_id", UUID(as_uuid=False), nullable=True),
        sa.Column("credential_id", sa.Text(), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("origin", sa.Text(), nullable=True),
        sa.Column("metadata", JSONB(), nullable=True),
        sa.Column("error_code", sa.String(40), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_passkey_audit_log"),
    )
    op.create_index("ix_passkey_audit_log_event_type", "passkey_audit_log", ["event_type"])
    op.create_index("ix_passkey_audit_log_user_id", "passkey_audit_log", ["user_id"])


def downgrade() -> None:
    """Drop all passkey tables."""
    op.drop_table("passkey_audit_log")
    op.drop_table("login_token")
    op.drop_table("passkey_rate_limit")
    op.drop_table("passkey_challenge")
    op.drop_table("passkey_credential")
    op.drop_table("user_account")
