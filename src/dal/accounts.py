"""User accounts and one-time login tokens."""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError

from src.dal.base import is_uuid
from src.passkeys.models import Account
from src.storage import SessionFactory, get_committing_session
from src.storage.entities.login_token import LoginToken
from src.storage.entities.user_account import UserAccount

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AccountRepository:
    """Account rows keyed by normalised email."""

    def __init__(self, session_factory: SessionFactory = get_committing_session):
        self._session_factory = session_factory

    async def find_by_email(self, email: str) -> Account | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserAccount).where(UserAccount.email == normalize_email(email))
            )
            row = result.scalar_one_or_none()
            return Account(id=row.id, email=row.email) if row else None

    async def get(self, user_id: str) -> Account | None:
        if not is_uuid(user_id):
            return None
        async with self._session_factory() as session:
            row = await session.get(UserAccount, user_id)
            return Account(id=row.id, email=row.email) if row else None

    async def create(self, email: str) -> Account:
        """Create an account, or return the one a concurrent caller just created."""
        row = UserAccount(email=normalize_email(email), email_verified=True)
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.flush()
                account = Account(id=row.id, email=row.email)
        except IntegrityError:
            logger.info("Account for %s created concurrently, re-reading", row.email)
            existing = await self.find_by_email(email)
            if existing is None:
                raise
            return existing
        return account


class LoginTokenRepository:
    """Stores SHA-256 hashes of issued login tokens."""

    def __init__(self, session_factory: SessionFactory = get_committing_session):
        self._session_factory = session_factory

    async def create(self, user_id: str, token_hash: str, expires_at: datetime) -> None:
        async with self._session_factory() as session:
            session.add(LoginToken(user_id=user_id, token_hash=token_hash, expires_at=expires_at))

    async def redeem(self, token_hash: str, now: datetime) -> str | None:
        """Mark an unused, unexpired token as used and return its owner.

        The conditional UPDATE makes redemption single-use under
        concurrency: only one caller sees the row.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(LoginToken)
                .where(
                    LoginToken.token_hash == token_hash,
                    LoginToken.used_at.is_(None),
                    LoginToken.expires_at > now,
                )
                .values(used_at=now)
                .returning(LoginToken.user_id)
            )
            return result.scalar_one_or_none()

    async def delete_stale(self, now: datetime) -> int:
        """Remove tokens that are used or past their expiry."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(LoginToken).where(
                    or_(LoginToken.used_at.is_not(None), LoginToken.expires_at < now)
                )
            )
            return result.rowcount
