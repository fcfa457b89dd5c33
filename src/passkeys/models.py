"""Value types shared by the ceremony engine, its stores and the API.

Everything here is plain data: no I/O and no SQLAlchemy, so the
orchestrator can run against in-memory stores.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any


class CeremonyKind(StrEnum):
    """Which ceremony a challenge was issued for."""

    REGISTRATION = "registration"
    AUTHENTICATION = "authentication"


class DeviceType(StrEnum):
    """Whether a credential is bound to one device or synced across several."""

    SINGLE_DEVICE = "singleDevice"
    MULTI_DEVICE = "multiDevice"


class IdentifierKind(StrEnum):
    """What a rate-limit window is keyed on."""

    IP = "ip"
    EMAIL = "email"


class Endpoint(StrEnum):
    """Protocol entry points addressed through the request envelope."""

    REGISTER_START = "/register/start"
    REGISTER_FINISH = "/register/finish"
    LOGIN_START = "/login/start"
    LOGIN_FINISH = "/login/finish"
    PASSKEYS_LIST = "/passkeys/list"
    PASSKEYS_REMOVE = "/passkeys/remove"
    PASSKEYS_UPDATE = "/passkeys/update"


class AuditEvent(StrEnum):
    """Audit event types."""

    REGISTRATION_STARTED = "registration_started"
    REGISTRATION_COMPLETED = "registration_completed"
    REGISTRATION_FAILED = "registration_failed"
    AUTHENTICATION_STARTED = "authentication_started"
    AUTHENTICATION_COMPLETED = "authentication_completed"
    AUTHENTICATION_FAILED = "authentication_failed"
    PASSKEY_REMOVED = "passkey_removed"
    PASSKEY_UPDATED = "passkey_updated"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    CHALLENGE_EXPIRED = "challenge_expired"
    COUNTER_MISMATCH = "counter_mismatch"


def utcnow() -> datetime:
    return datetime.now(UTC)


def window_start(now: datetime, window_seconds: int) -> datetime:
    """Truncate ``now`` to the start of its fixed rate-limit window."""
    epoch = int(now.timestamp())
    return datetime.fromtimestamp(epoch - epoch % window_seconds, tz=UTC)


@dataclass(frozen=True)
class RequestContext:
    """What the HTTP layer observed about the caller."""

    ip_address: str
    origin: str
    user_agent: str | None = None
    bearer_token: str | None = None


@dataclass(frozen=True)
class Account:
    """An identity-provider account."""

    id: str
    email: str


@dataclass(frozen=True)
class ChallengeHandle:
    """Returned by ``ChallengeStore.create``."""

    id: str
    nonce: str


@dataclass(frozen=True)
class Challenge:
    """A pending ceremony as it was stored at begin time."""

    id: str
    kind: CeremonyKind
    nonce: str
    expires_at: datetime
    email: str | None = None
    user_handle: str | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class ChallengeNotFound:
    """Unknown ceremony id, already consumed, or issued for the other ceremony."""


@dataclass(frozen=True)
class ChallengeExpired:
    """The challenge existed but its TTL had passed. It has been deleted."""

    challenge: Challenge


ConsumeResult = Challenge | ChallengeNotFound | ChallengeExpired


@dataclass(frozen=True)
class RateLimitDecision:
    """Post-increment attempt count for the current window."""

    attempt_count: int
    ceiling: int

    @property
    def blocked(self) -> bool:
        return self.attempt_count > self.ceiling


@dataclass
class Credential:
    """A stored passkey."""

    id: str
    user_id: str
    webauthn_user_id: str
    public_key: bytes
    counter: int = 0
    device_type: DeviceType = DeviceType.SINGLE_DEVICE
    backed_up: bool = False
    transports: list[str] = field(default_factory=list)
    authenticator_name: str | None = None
    aaguid: str | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None


@dataclass(frozen=True)
class AuditRecord:
    """One audit event, as handed to the audit log."""

    event: AuditEvent
    user_id: str | None = None
    credential_id: str | None = None
    email: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    origin: str | None = None
    metadata: dict[str, Any] | None = None
    error_code: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None


# Verifier results


@dataclass(frozen=True)
class NewCredential:
    """Credential material extracted from a verified attestation."""

    id: str
    public_key: bytes
    counter: int
    transports: list[str] = field(default_factory=list)
    aaguid: str | None = None


@dataclass(frozen=True)
class VerifiedRegistration:
    credential: NewCredential
    device_type: DeviceType
    backed_up: bool


@dataclass(frozen=True)
class VerifiedAuthentication:
    new_counter: int
    backed_up: bool


@dataclass(frozen=True)
class Rejected:
    """Any failed verification check. ``counter_mismatch`` marks a clone signal."""

    reason: str
    counter_mismatch: bool = False


# Orchestrator results


@dataclass(frozen=True)
class CeremonyStart:
    ceremony_options: dict[str, Any]
    ceremony_id: str


@dataclass(frozen=True)
class RegistrationOutcome:
    passkey: Credential
    login_token: str


@dataclass(frozen=True)
class AuthenticationOutcome:
    login_token: str
    email: str
    credential_id: str


@dataclass(frozen=True)
class SessionToken:
    """Bearer session issued when a login token is redeemed."""

    access_token: str
    expires_at: datetime
    account: Account
