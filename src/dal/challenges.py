"""Challenge store.

``consume`` is a single ``DELETE ... RETURNING``: of any number of
concurrent finish calls for one ceremony id, exactly one gets the row
back and the rest see nothing.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy import delete

from src.dal.base import is_uuid
from src.passkeys.models import (
    CeremonyKind,
    Challenge,
    ChallengeExpired,
    ChallengeHandle,
    ChallengeNotFound,
    ConsumeResult,
)
from src.storage import SessionFactory, get_committing_session
from src.storage.entities.passkey_challenge import PasskeyChallenge

logger = logging.getLogger(__name__)


class ChallengeRepository:
    """PostgreSQL-backed challenge store."""

    def __init__(self, session_factory: SessionFactory = get_committing_session):
        self._session_factory = session_factory

    async def create(
        self,
        kind: CeremonyKind,
        nonce: str,
        email: str | None,
        user_handle: str | None,
        ttl: timedelta,
        now: datetime,
    ) -> ChallengeHandle:
        row = PasskeyChallenge(
            id=str(uuid.uuid4()),
            challenge=nonce,
            type=str(kind),
            email=email,
            webauthn_user_id=user_handle,
            expires_at=now + ttl,
        )
        async with self._session_factory() as session:
            session.add(row)
        return ChallengeHandle(id=row.id, nonce=nonce)

    async def consume(
        self, ceremony_id: str, expected_kind: CeremonyKind, now: datetime
    ) -> ConsumeResult:
        """Delete the challenge and report what it was.

        A record of the other ceremony kind is deleted too and reported
        as not found.
        """
        if not is_uuid(ceremony_id):
            return ChallengeNotFound()

        async with self._session_factory() as session:
            result = await session.execute(
                delete(PasskeyChallenge)
                .where(PasskeyChallenge.id == ceremony_id)
                .returning(
                    PasskeyChallenge.id,
                    PasskeyChallenge.type,
                    PasskeyChallenge.challenge,
                    PasskeyChallenge.email,
                    PasskeyChallenge.webauthn_user_id,
                    PasskeyChallenge.expires_at,
                )
            )
            row = result.one_or_none()

        if row is None:
            return ChallengeNotFound()
        if row.type != expected_kind:
            logger.info(
                "Challenge %s finished as %s but issued for %s",
                ceremony_id,
                expected_kind,
                row.type,
            )
            return ChallengeNotFound()

        challenge = Challenge(
            id=str(row.id),
            kind=CeremonyKind(row.type),
            nonce=row.challenge,
            expires_at=row.expires_at,
            email=row.email,
            user_handle=row.webauthn_user_id,
        )
        if challenge.is_expired(now):
            return ChallengeExpired(challenge=challenge)
        return challenge

    async def delete_expired(self, now: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(PasskeyChallenge).where(PasskeyChallenge.expires_at < now)
            )
            return result.rowcount
