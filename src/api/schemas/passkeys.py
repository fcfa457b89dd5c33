"""Passkey protocol envelope schemas.

Every protocol call is ``POST /api/v1/passkey-auth`` with
``{"endpoint": "/register/start", "data": {...}}`` and is answered with
``{"success": bool, "data": {...}?, "error": {"code", "message"}?}``.
Field names on the wire are camelCase.
"""

import re
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from src.passkeys.models import Credential, DeviceType

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def _normalize_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Envelope
# =============================================================================


class PasskeyRequest(BaseModel):
    """Request envelope. ``data`` is validated per endpoint."""

    endpoint: str = Field(..., min_length=1, max_length=64)
    data: dict[str, Any] = Field(default_factory=dict)


class ErrorBody(BaseModel):
    code: str
    message: str


class PasskeyResponse(BaseModel):
    """Response envelope."""

    success: bool
    data: dict[str, Any] | None = None
    error: ErrorBody | None = None


# =============================================================================
# Per-endpoint request data
# =============================================================================


class RegisterStartData(_CamelModel):
    email: str = Field(..., max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


class RegisterFinishData(_CamelModel):
    ceremony_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("ceremonyId", "challengeId", "ceremony_id"),
    )
    response: dict[str, Any]
    authenticator_name: str | None = Field(default=None, max_length=255)

    @field_validator("authenticator_name")
    @classmethod
    def blank_name_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()


class LoginStartData(_CamelModel):
    email: str | None = Field(default=None, max_length=255)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return _normalize_email(value)


class LoginFinishData(_CamelModel):
    ceremony_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("ceremonyId", "challengeId", "ceremony_id"),
    )
    response: dict[str, Any]


class RemovePasskeyData(_CamelModel):
    credential_id: str = Field(..., min_length=1, max_length=1024)


class UpdatePasskeyData(_CamelModel):
    credential_id: str = Field(..., min_length=1, max_length=1024)
    authenticator_name: str = Field(..., min_length=1, max_length=255)

    @field_validator("authenticator_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("authenticatorName must not be blank")
        return value


# =============================================================================
# Response data
# =============================================================================


class PasskeyInfo(_CamelModel):
    """Public metadata of a stored passkey (no key material)."""

    id: str
    authenticator_name: str | None
    device_type: DeviceType
    backed_up: bool
    transports: list[str] = Field(default_factory=list)
    created_at: datetime | None
    last_used_at: datetime | None

    @classmethod
    def from_credential(cls, credential: Credential) -> "PasskeyInfo":
        return cls(
            id=credential.id,
            authenticator_name=credential.authenticator_name,
            device_type=credential.device_type,
            backed_up=credential.backed_up,
            transports=list(credential.transports),
            created_at=credential.created_at,
            last_used_at=credential.last_used_at,
        )


class CeremonyStartResult(_CamelModel):
    ceremony_options: dict[str, Any]
    ceremony_id: str


class RegisterFinishResult(_CamelModel):
    verified: bool
    passkey: PasskeyInfo
    login_token: str


class LoginFinishResult(_CamelModel):
    verified: bool
    login_token: str
    email: str


class PasskeyListResult(_CamelModel):
    passkeys: list[PasskeyInfo]


class RemovePasskeyResult(_CamelModel):
    removed: bool


class UpdatePasskeyResult(_CamelModel):
    passkey: PasskeyInfo


# =============================================================================
# Session token redemption
# =============================================================================


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=512)


class TokenResponse(_CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    email: str
