"""Append-only audit trail of protocol transitions.

Rows are inserted and never updated.
"""

from typing import Any

from sqlalchemy import String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, CreatedAtMixin, UUIDMixin


class PasskeyAuditLog(Base, UUIDMixin, CreatedAtMixin):
    """One audit event."""

    __tablename__ = "passkey_audit_log"

    event_type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        nullable=True,
        index=True,
    )
    credential_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(64), nullable=True)
    user_agent: Mapped[str | None] = mapped_column(Text, nullable=True)
    origin: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSONB,
        nullable=True,
    )
    error_code: Mapped[str | None] = mapped_column(String(40), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<PasskeyAuditLog(event_type={self.event_type!r}, email={self.email!r})>"
