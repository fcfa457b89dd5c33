"""Passkey credential entity model.

One row per registered authenticator. The primary key is the
base64url credential id the authenticator generated, which is globally
unique across all accounts.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    LargeBinary,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.passkeys.models import DeviceType
from src.storage.models import Base


class PasskeyCredential(Base):
    """Stored WebAuthn credential (public key, counter, device metadata)."""

    __tablename__ = "passkey_credential"
    __table_args__ = (
        UniqueConstraint("id", "user_id", name="uq_passkey_credential_id_user_id"),
        Index("ix_passkey_credential_webauthn_user_id", "webauthn_user_id"),
    )

    id: Mapped[str] = mapped_column(
        Text,
        primary_key=True,
        doc="Base64url credential id",
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
        doc="Owning account",
    )
    webauthn_user_id: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        doc="Pseudonymous user handle presented at registration",
    )
    public_key: Mapped[bytes] = mapped_column(
        LargeBinary,
        nullable=False,
        doc="COSE public key bytes for signature verification",
    )
    counter: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        doc="Signature counter for replay protection",
    )
    device_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DeviceType.SINGLE_DEVICE,
    )
    backed_up: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    transports: Mapped[list | None] = mapped_column(
        JSONB,
        nullable=True,
        doc='Authenticator transports (e.g. ["internal", "hybrid"])',
    )
    authenticator_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        doc="User-facing label (e.g. 'Work laptop')",
    )
    aaguid: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    last_used_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        doc="When this credential last completed an authentication",
    )

    def __repr__(self) -> str:
        return f"<PasskeyCredential(id={self.id!r}, user_id={self.user_id!r})>"
