"""Fixed-window attempt counter."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.storage.models import Base, CreatedAtMixin, UUIDMixin


class PasskeyRateLimit(Base, UUIDMixin, CreatedAtMixin):
    """Attempts seen for one (identifier, kind, endpoint) in one window."""

    __tablename__ = "passkey_rate_limit"
    __table_args__ = (
        UniqueConstraint(
            "identifier",
            "identifier_type",
            "endpoint",
            "window_start",
            name="uq_passkey_rate_limit_window",
        ),
    )

    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    identifier_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        doc="ip | email",
    )
    endpoint: Mapped[str] = mapped_column(String(50), nullable=False)
    window_start: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
    )
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
