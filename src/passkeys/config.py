"""Relying-party configuration passed into every ceremony call."""

from dataclasses import dataclass, field
from datetime import timedelta

from src.settings import Settings

ES256 = -7
RS256 = -257
SUPPORTED_ALGORITHMS: tuple[int, ...] = (ES256, RS256)


def _split_origins(raw: str) -> tuple[str, ...]:
    return tuple(o.strip().rstrip("/") for o in raw.split(",") if o.strip())


@dataclass(frozen=True)
class RelyingPartyConfig:
    """Identity and policy of one relying party.

    ``allowed_origins`` empty means the observed origin is trusted as-is
    and only checked for an exact match by the verifier.
    """

    rp_id: str
    rp_name: str
    allowed_origins: tuple[str, ...] = ()
    timeout_ms: int = 60000
    challenge_ttl: timedelta = timedelta(minutes=5)
    ip_ceiling: int = 5
    email_ceiling: int = 10
    rate_limit_window_seconds: int = 60
    allow_zero_sign_count: bool = False
    algorithms: tuple[int, ...] = field(default=SUPPORTED_ALGORITHMS)

    @classmethod
    def from_settings(cls, settings: Settings) -> "RelyingPartyConfig":
        return cls(
            rp_id=settings.webauthn_rp_id,
            rp_name=settings.webauthn_rp_name,
            allowed_origins=_split_origins(settings.webauthn_allowed_origins),
            timeout_ms=settings.webauthn_timeout_ms,
            challenge_ttl=timedelta(minutes=settings.challenge_ttl_minutes),
            ip_ceiling=settings.rate_limit_ip_max_attempts,
            email_ceiling=settings.rate_limit_email_max_attempts,
            rate_limit_window_seconds=settings.rate_limit_window_seconds,
            allow_zero_sign_count=settings.webauthn_allow_zero_sign_count,
        )

    def origin_allowed(self, origin: str) -> bool:
        if not self.allowed_origins:
            return True
        return origin.rstrip("/") in self.allowed_origins
