"""Store and collaborator interfaces the orchestrator depends on.

The production implementations live in ``src.dal`` (PostgreSQL),
``src.identity`` and ``src.passkeys.verifier``; tests substitute
in-memory versions.
"""

from datetime import datetime, timedelta
from typing import Any, Protocol

from src.passkeys.models import (
    Account,
    AuditEvent,
    AuditRecord,
    CeremonyKind,
    ChallengeHandle,
    ConsumeResult,
    Credential,
    IdentifierKind,
    RateLimitDecision,
    Rejected,
    SessionToken,
    VerifiedAuthentication,
    VerifiedRegistration,
)


class ChallengeStore(Protocol):
    async def create(
        self,
        kind: CeremonyKind,
        nonce: str,
        email: str | None,
        user_handle: str | None,
        ttl: timedelta,
        now: datetime,
    ) -> ChallengeHandle: ...

    async def consume(
        self, ceremony_id: str, expected_kind: CeremonyKind, now: datetime
    ) -> ConsumeResult: ...

    async def delete_expired(self, now: datetime) -> int: ...


class CredentialStore(Protocol):
    async def get(self, credential_id: str) -> Credential | None: ...

    async def list_for_user(self, user_id: str) -> list[Credential]: ...

    async def add(self, credential: Credential) -> Credential:
        """Persist a new credential; raises CredentialExistsError if the id is taken."""
        ...

    async def advance_counter(
        self,
        credential_id: str,
        expected: int,
        new: int,
        used_at: datetime,
        backed_up: bool,
    ) -> bool:
        """Set counter to ``new`` only if it still equals ``expected``.

        The same write records ``used_at`` and the backup state the
        authenticator just reported.
        """
        ...

    async def remove(self, credential_id: str, user_id: str) -> bool: ...

    async def rename(self, credential_id: str, user_id: str, name: str) -> Credential | None: ...


class RateLimiter(Protocol):
    async def check(
        self,
        identifier: str,
        kind: IdentifierKind,
        endpoint: str,
        ceiling: int,
        window_seconds: int,
        now: datetime,
    ) -> RateLimitDecision: ...

    async def delete_windows_before(self, cutoff: datetime) -> int: ...


class AuditLog(Protocol):
    async def record(self, record: AuditRecord) -> None: ...

    async def recent(
        self, limit: int = 50, event: AuditEvent | None = None
    ) -> list[AuditRecord]: ...


class IdentityProvider(Protocol):
    async def find_user_by_email(self, email: str) -> Account | None: ...

    async def create_user(self, email: str) -> Account: ...

    async def get_user(self, user_id: str) -> Account | None: ...

    async def issue_login_token(self, account: Account) -> str: ...

    async def redeem_login_token(self, token: str) -> SessionToken | None: ...

    async def validate_session(self, bearer_token: str) -> Account | None: ...


class Verifier(Protocol):
    def verify_registration(
        self,
        response: dict[str, Any],
        expected_nonce: str,
        expected_origin: str,
        rp_id: str,
        algorithms: tuple[int, ...],
    ) -> VerifiedRegistration | Rejected: ...

    def verify_authentication(
        self,
        response: dict[str, Any],
        expected_nonce: str,
        expected_origin: str,
        rp_id: str,
        public_key: bytes,
        stored_counter: int,
        allow_zero_sign_count: bool = False,
    ) -> VerifiedAuthentication | Rejected: ...
