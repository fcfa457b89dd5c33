"""Pydantic schemas for API requests and responses."""

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, Field

from src.api.schemas.passkeys import (
    CeremonyStartResult,
    ErrorBody,
    LoginFinishData,
    LoginFinishResult,
    LoginStartData,
    PasskeyInfo,
    PasskeyListResult,
    PasskeyRequest,
    PasskeyResponse,
    RegisterFinishData,
    RegisterFinishResult,
    RegisterStartData,
    RemovePasskeyData,
    RemovePasskeyResult,
    TokenRequest,
    TokenResponse,
    UpdatePasskeyData,
    UpdatePasskeyResult,
)


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Health check response."""

    status: HealthStatus = Field(..., description="Overall service health")
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="Health check timestamp",
    )
    version: str = Field(default="0.1.0", description="Application version")
    message: str | None = Field(default=None, description="Additional status message")


__all__ = [
    "CeremonyStartResult",
    "ErrorBody",
    "HealthResponse",
    "HealthStatus",
    "LoginFinishData",
    "LoginFinishResult",
    "LoginStartData",
    "PasskeyInfo",
    "PasskeyListResult",
    "PasskeyRequest",
    "PasskeyResponse",
    "RegisterFinishData",
    "RegisterFinishResult",
    "RegisterStartData",
    "RemovePasskeyData",
    "RemovePasskeyResult",
    "TokenRequest",
    "TokenResponse",
    "UpdatePasskeyData",
    "UpdatePasskeyResult",
]
