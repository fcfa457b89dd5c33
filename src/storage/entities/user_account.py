"""User account model.

The identity record passkeys hang off. Emails are stored lower-cased.
"""

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, TimestampMixin, UUIDMixin


class UserAccount(Base, UUIDMixin, TimestampMixin):
    """Account known to the local identity provider."""

    __tablename__ = "user_account"

    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
        doc="Normalised (lower-case) email address",
    )
    email_verified: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        doc="Completing a passkey ceremony for the address counts as proof",
    )

    def __repr__(self) -> str:
        return f"<UserAccount(id={self.id}, email={self.email})>"
