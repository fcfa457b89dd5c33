"""Passkey credential store.

Management operations are always scoped by credential id AND owner, so
a caller can neither see nor touch another account's passkey.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError

from src.exceptions import CredentialExistsError
from src.passkeys.models import Credential, DeviceType
from src.storage import SessionFactory, get_committing_session
from src.storage.entities.passkey_credential import PasskeyCredential

logger = logging.getLogger(__name__)


def _to_credential(row: PasskeyCredential) -> Credential:
    return Credential(
        id=row.id,
        user_id=row.user_id,
        webauthn_user_id=row.webauthn_user_id,
        public_key=row.public_key,
        counter=row.counter,
        device_type=DeviceType(row.device_type),
        backed_up=row.backed_up,
        transports=list(row.transports or []),
        authenticator_name=row.authenticator_name,
        aaguid=row.aaguid,
        created_at=row.created_at,
        last_used_at=row.last_used_at,
    )


class CredentialRepository:
    """PostgreSQL-backed credential store."""

    def __init__(self, session_factory: SessionFactory = get_committing_session):
        self._session_factory = session_factory

    async def get(self, credential_id: str) -> Credential | None:
        async with self._session_factory() as session:
            row = await session.get(PasskeyCredential, credential_id)
            return _to_credential(row) if row else None

    async def list_for_user(self, user_id: str) -> list[Credential]:
        """Newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(PasskeyCredential)
                .where(PasskeyCredential.user_id == user_id)
                .order_by(PasskeyCredential.created_at.desc())
            )
            return [_to_credential(r) for r in result.scalars().all()]

    async def add(self, credential: Credential) -> Credential:
        """Insert a credential.

        Raises:
            CredentialExistsError: the credential id is already registered
        """
        row = PasskeyCredential(
            id=credential.id,
            user_id=credential.user_id,
            webauthn_user_id=credential.webauthn_user_id,
            public_key=credential.public_key,
            counter=credential.counter,
            device_type=str(credential.device_type),
            backed_up=credential.backed_up,
            transports=list(credential.transports),
            authenticator_name=credential.authenticator_name,
            aaguid=credential.aaguid,
        )
        try:
            async with self._session_factory() as session:
                session.add(row)
                await session.flush()
                await session.refresh(row)
                stored = _to_credential(row)
        except IntegrityError as e:
            logger.info("Credential %s already registered", credential.id)
            raise CredentialExistsError() from e
        return stored

    async def advance_counter(
        self,
        credential_id: str,
        expected: int,
        new: int,
        used_at: datetime,
        backed_up: bool,
    ) -> bool:
        """Compare-and-set the signature counter.

        Returns False when another authentication moved the counter first.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                update(PasskeyCredential)
                .where(
                    PasskeyCredential.id == credential_id,
                    PasskeyCredential.counter == expected,
                )
                .values(counter=new, last_used_at=used_at, backed_up=backed_up)
            )
            return result.rowcount == 1

    async def remove(self, credential_id: str, user_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(PasskeyCredential).where(
                    PasskeyCredential.id == credential_id,
                    PasskeyCredential.user_id == user_id,
                )
            )
            return result.rowcount == 1

    async def rename(self, credential_id: str, user_id: str, name: str) -> Credential | None:
        async with self._session_factory() as session:
            result = await session.execute(
                update(PasskeyCredential)
                .where(
                    PasskeyCredential.id == credential_id,
                    PasskeyCredential.user_id == user_id,
                )
                .values(authenticator_name=name)
                .returning(PasskeyCredential)
            )
            row = result.scalar_one_or_none()
            return _to_credential(row) if row else None
