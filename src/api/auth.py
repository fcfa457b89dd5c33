"""Session tokens for the passkey service.

A finished ceremony yields a one-time login token; redeeming it at
``/api/v1/auth/token`` returns an HS256 JWT whose ``sub`` is the account
id. Credential management calls present that JWT as
``Authorization: Bearer <token>``.
"""

import logging
import time

import jwt
from fastapi import Request

# Import module (not function) so monkeypatching in tests works correctly.
import src.settings as _settings_mod
from src.exceptions import ConfigurationError
from src.settings import Settings

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"
JWT_ISSUER = "latchkey"


def _get_jwt_secret(settings: Settings) -> str:
    """Get the JWT signing secret.

    Production requires an explicit JWT_SECRET; other environments fall
    back to a fixed development secret.
    """
    configured = settings.jwt_secret.get_secret_value()
    if configured:
        if settings.environment == "production" and len(configured) < 32:
            logger.warning(
                "JWT_SECRET is shorter than 32 characters. Use a cryptographically "
                "random secret for production (e.g. `openssl rand -hex 32`)."
            )
        return configured

    if settings.environment == "production":
        raise ConfigurationError(
            "JWT_SECRET must be set in production. Generate one with: openssl rand -hex 32"
        )
    return "latchkey-dev-jwt-secret"


def create_jwt_token(
    user_id: str,
    email: str,
    settings: Settings | None = None,
    *,
    issued_at: int | None = None,
) -> str:
    """Create a session JWT for an account.

    Args:
        user_id: Account id, stored as ``sub``
        email: Account email, stored as ``email``
        settings: Optional settings override
        issued_at: Unix timestamp to use as ``iat`` (defaults to now)

    Returns:
        Encoded JWT token string
    """
    settings = settings or _settings_mod.get_settings()
    secret = _get_jwt_secret(settings)
    now = issued_at if issued_at is not None else int(time.time())
    payload = {
        "sub": user_id,
        "email": email,
        "iss": JWT_ISSUER,
        "iat": now,
        "exp": now + settings.jwt_expiry_hours * 3600,
    }
    return jwt.encode(payload, secret, algorithm=JWT_ALGORITHM)


def decode_jwt_token(token: str, settings: Settings | None = None) -> dict | None:
    """Decode and validate a session JWT.

    Returns:
        Decoded payload dict, or None if invalid/expired
    """
    settings = settings or _settings_mod.get_settings()
    secret = _get_jwt_secret(settings)
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            issuer=JWT_ISSUER,
            options={"require": ["sub", "exp"]},
        )
    except jwt.InvalidTokenError:
        return None


def _extract_bearer_token(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None
