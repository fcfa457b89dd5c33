"""One-time login token.

Finished ceremonies hand the client a random token; only its SHA-256
hash is stored. Redeeming it at ``/auth/token`` stamps ``used_at``.
"""

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, CreatedAtMixin, UUIDMixin


class LoginToken(Base, UUIDMixin, CreatedAtMixin):
    """Redeemable-once login token."""

    __tablename__ = "login_token"

    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("user_account.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
