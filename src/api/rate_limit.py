"""Process-local flood guard for the HTTP surface.

A slowapi ``Limiter`` applied to every route through
``SlowAPIMiddleware`` (default ``GLOBAL_RATE_LIMIT``, 60/minute per
client IP). It sits in front of the protocol rate limiter, which is
shared through PostgreSQL and enforces the per-IP and per-email ceilings
of each ceremony endpoint; this one never replaces it.

Health probes are exempt:

    @router.get("/health")
    @limiter.exempt
    async def health_check(request: Request): ...
"""

import ipaddress

from slowapi import Limiter
from starlette.requests import Request

import src.settings as _settings_mod

UNKNOWN_CLIENT_IP = "0.0.0.0"  # noqa: S104


def _parse_ip(value: str | None) -> str | None:
    """Canonical form of a header-supplied address, or None if it is not one."""
    # Longest textual IPv6 (IPv4-mapped) is 45 characters
    if not value or len(value.strip()) > 45:
        return None
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def _get_real_client_ip(request: Request) -> str:
    """Extract the client IP, respecting proxy headers.

    Order: first ``X-Forwarded-For`` entry, ``X-Real-IP``,
    ``CF-Connecting-IP``, the socket peer, then ``0.0.0.0``. Header
    values that do not parse as an IP address are skipped, so the key
    always fits the rate-limit and audit columns.
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # X-Forwarded-For: client, proxy1, proxy2 -- take the leftmost (client)
        first = _parse_ip(forwarded_for.split(",")[0])
        if first:
            return first
    for header in ("X-Real-IP", "CF-Connecting-IP"):
        value = _parse_ip(request.headers.get(header))
        if value:
            return value
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT_IP


def _global_limit() -> str:
    return _settings_mod.get_settings().global_rate_limit


limiter = Limiter(
    key_func=_get_real_client_ip,
    default_limits=[_global_limit],
)

# Maximum request body size (bytes); attestation objects are a few KB.
MAX_REQUEST_BODY_BYTES = 65_536
