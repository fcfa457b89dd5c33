"""Shared FastAPI dependencies.

Provides the relying-party configuration, the identity provider and the
ceremony orchestrator to route modules. Tests replace any of them via
``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

import src.settings as _settings_mod
from src.dal import (
    AuditLogRepository,
    ChallengeRepository,
    CredentialRepository,
    RateLimitRepository,
)
from src.identity import LocalIdentityProvider
from src.passkeys.config import RelyingPartyConfig
from src.passkeys.orchestrator import CeremonyOrchestrator
from src.passkeys.verifier import WebAuthnVerifier


def get_relying_party() -> RelyingPartyConfig:
    """Relying-party configuration for the current settings."""
    return RelyingPartyConfig.from_settings(_settings_mod.get_settings())


def get_identity_provider() -> LocalIdentityProvider:
    return LocalIdentityProvider(_settings_mod.get_settings())


def get_orchestrator(
    identity: Annotated[LocalIdentityProvider, Depends(get_identity_provider)],
) -> CeremonyOrchestrator:
    """Ceremony orchestrator wired to the PostgreSQL-backed stores."""
    return CeremonyOrchestrator(
        challenges=ChallengeRepository(),
        credentials=CredentialRepository(),
        rate_limiter=RateLimitRepository(),
        audit_log=AuditLogRepository(),
        identity=identity,
        verifier=WebAuthnVerifier(),
    )


RelyingPartyDep = Annotated[RelyingPartyConfig, Depends(get_relying_party)]
IdentityDep = Annotated[LocalIdentityProvider, Depends(get_identity_provider)]
OrchestratorDep = Annotated[CeremonyOrchestrator, Depends(get_orchestrator)]
