"""Fixed-window rate limiter.

The increment and the read happen in one upsert, so concurrent requests
in the same window never lose an update and each sees its own
post-increment count.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert

from src.passkeys.models import IdentifierKind, RateLimitDecision, window_start
from src.storage import SessionFactory, get_committing_session
from src.storage.entities.passkey_rate_limit import PasskeyRateLimit


class RateLimitRepository:
    """PostgreSQL-backed attempt counter."""

    def __init__(self, session_factory: SessionFactory = get_committing_session):
        self._session_factory = session_factory

    async def check(
        self,
        identifier: str,
        kind: IdentifierKind,
        endpoint: str,
        ceiling: int,
        window_seconds: int,
        now: datetime,
    ) -> RateLimitDecision:
        table = PasskeyRateLimit.__table__
        stmt = insert(PasskeyRateLimit).values(
            identifier=identifier,
            identifier_type=str(kind),
            endpoint=str(endpoint),
            window_start=window_start(now, window_seconds),
            attempt_count=1,
        )
        stmt = stmt.on_conflict_do_update(
            constraint="uq_passkey_rate_limit_window",
            set_={"attempt_count": table.c.attempt_count + 1},
        ).returning(table.c.attempt_count)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            count = result.scalar_one()
        return RateLimitDecision(attempt_count=count, ceiling=ceiling)

    async def delete_windows_before(self, cutoff: datetime) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(PasskeyRateLimit).where(PasskeyRateLimit.window_start < cutoff)
            )
            return result.rowcount
