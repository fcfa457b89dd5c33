"""Pending ceremony challenge.

A row lives from ``begin_*`` until the first ``finish_*`` that names its
id, or until the cleanup job removes it after ``expires_at``.
"""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, CreatedAtMixin, UUIDMixin


class PasskeyChallenge(Base, UUIDMixin, CreatedAtMixin):
    """Single-use, time-bounded nonce keyed by ceremony id."""

    __tablename__ = "passkey_challenge"

    challenge: Mapped[str] = mapped_column(
        Text,
        unique=True,
        nullable=False,
        doc="Base64url nonce sent to the authenticator",
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="registration | authentication",
    )
    email: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="Subject email named at begin (absent for discoverable login)",
    )
    webauthn_user_id: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
        doc="User handle generated for a registration ceremony",
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<PasskeyChallenge(id={self.id!r}, type={self.type!r})>"
