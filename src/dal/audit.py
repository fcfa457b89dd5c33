"""Append-only audit log."""

from __future__ import annotations

from sqlalchemy import select

from src.passkeys.models import AuditEvent, AuditRecord
from src.storage import SessionFactory, get_committing_session
from src.storage.entities.passkey_audit_log import PasskeyAuditLog


class AuditLogRepository:
    """Inserts audit rows; there is no update or delete path."""

    def __init__(self, session_factory: SessionFactory = get_committing_session):
        self._session_factory = session_factory

    async def record(self, record: AuditRecord) -> None:
        async with self._session_factory() as session:
            session.add(
                PasskeyAuditLog(
                    event_type=str(record.event),
                    user_id=record.user_id,
                    credential_id=record.credential_id,
                    email=record.email,
                    ip_address=record.ip_address,
                    user_agent=record.user_agent,
                    origin=record.origin,
                    event_metadata=record.metadata,
                    error_code=record.error_code,
                    error_message=record.error_message,
                )
            )

    async def recent(self, limit: int = 50, event: AuditEvent | None = None) -> list[AuditRecord]:
        """Most recent events first, optionally filtered by type."""
        query = select(PasskeyAuditLog).order_by(PasskeyAuditLog.created_at.desc()).limit(limit)
        if event is not None:
            query = query.where(PasskeyAuditLog.event_type == str(event))

        async with self._session_factory() as session:
            result = await session.execute(query)
            rows = result.scalars().all()

        return [
            AuditRecord(
                event=AuditEvent(r.event_type),
                user_id=r.user_id,
                credential_id=r.credential_id,
                email=r.email,
                ip_address=r.ip_address,
                user_agent=r.user_agent,
                origin=r.origin,
                metadata=r.event_metadata,
                error_code=r.error_code,
                error_message=r.error_message,
                created_at=r.created_at,
            )
            for r in rows
        ]
