"""Latchkey exception hierarchy.

Base exceptions for all application layers with correlation ID support.
Protocol failures carry an ``ErrorCode`` that is returned to the caller
inside the response envelope.

Usage:
    from src.exceptions import ChallengeExpiredError, PasskeyError

    try:
        await orchestrator.finish_registration(...)
    except PasskeyError as e:
        logger.info("Ceremony rejected", code=e.code, correlation_id=e.correlation_id)
"""

import uuid
from enum import StrEnum


class ErrorCode(StrEnum):
    """Caller-facing error codes."""

    INVALID_INPUT = "INVALID_INPUT"
    UNAUTHORIZED = "UNAUTHORIZED"
    RATE_LIMITED = "RATE_LIMITED"
    CHALLENGE_MISMATCH = "CHALLENGE_MISMATCH"
    CHALLENGE_EXPIRED = "CHALLENGE_EXPIRED"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    CREDENTIAL_NOT_FOUND = "CREDENTIAL_NOT_FOUND"
    CREDENTIAL_EXISTS = "CREDENTIAL_EXISTS"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    NETWORK_ERROR = "NETWORK_ERROR"  # client-side transport failures only
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class LatchkeyError(Exception):
    """Base exception for all Latchkey application errors.

    Carries a correlation_id for tracing errors across layers.
    """

    def __init__(self, message: str, *, correlation_id: str | None = None):
        self.correlation_id = correlation_id or str(uuid.uuid4())
        super().__init__(message)


class ConfigurationError(LatchkeyError):
    """Errors from application configuration."""

    pass


class PasskeyError(LatchkeyError):
    """A ceremony or credential-management request was rejected.

    Subclasses fix the error code and HTTP status; the message is what
    the caller sees, so keep it generic.
    """

    code: ErrorCode = ErrorCode.UNKNOWN_ERROR
    status_code: int = 500

    def __init__(self, message: str | None = None, **kwargs):
        super().__init__(message or self.default_message, **kwargs)

    default_message = "An unexpected error occurred. Please try again."

    @property
    def message(self) -> str:
        return str(self)


class InvalidInputError(PasskeyError):
    code = ErrorCode.INVALID_INPUT
    status_code = 400
    default_message = "Invalid input provided."


class UnauthorizedError(PasskeyError):
    code = ErrorCode.UNAUTHORIZED
    status_code = 401
    default_message = "Authentication required."


class RateLimitedError(PasskeyError):
    code = ErrorCode.RATE_LIMITED
    status_code = 429
    default_message = "Too many requests."


class ChallengeMismatchError(PasskeyError):
    code = ErrorCode.CHALLENGE_MISMATCH
    status_code = 400
    default_message = "Invalid or expired challenge."


class ChallengeExpiredError(PasskeyError):
    code = ErrorCode.CHALLENGE_EXPIRED
    status_code = 400
    default_message = "Challenge has expired."


class VerificationFailedError(PasskeyError):
    code = ErrorCode.VERIFICATION_FAILED
    status_code = 401
    default_message = "Verification failed."


class CredentialNotFoundError(PasskeyError):
    code = ErrorCode.CREDENTIAL_NOT_FOUND
    status_code = 404
    default_message = "Passkey not found."


class CredentialExistsError(PasskeyError):
    code = ErrorCode.CREDENTIAL_EXISTS
    status_code = 409
    default_message = "This passkey is already registered."


class UserNotFoundError(PasskeyError):
    code = ErrorCode.USER_NOT_FOUND
    status_code = 404
    default_message = "Account not found."
