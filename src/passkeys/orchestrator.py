"""Ceremony orchestrator.

Each ceremony moves Created -> Pending -> {Verified | Rejected | Expired}.
``begin_*`` creates the pending challenge; ``finish_*`` consumes it on
the first call whatever the outcome, so a ceremony id is never usable
twice.

Every entry point first runs the protocol rate limiters; a blocked
request has no other side effect. Audit events are written after the
decision they describe, and a failing audit write never changes the
response.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, NoReturn

from src.exceptions import (
    ChallengeExpiredError,
    ChallengeMismatchError,
    CredentialExistsError,
    CredentialNotFoundError,
    ErrorCode,
    RateLimitedError,
    UnauthorizedError,
    UserNotFoundError,
    VerificationFailedError,
)
from src.passkeys.config import RelyingPartyConfig
from src.passkeys.models import (
    Account,
    AuditEvent,
    AuditRecord,
    AuthenticationOutcome,
    CeremonyKind,
    CeremonyStart,
    Challenge,
    ChallengeExpired,
    ChallengeNotFound,
    Credential,
    Endpoint,
    IdentifierKind,
    Rejected,
    RegistrationOutcome,
    RequestContext,
    VerifiedAuthentication,
    VerifiedRegistration,
    utcnow,
)
from src.passkeys.options import (
    build_authentication_options,
    build_registration_options,
    new_nonce,
    new_user_handle,
)
from src.passkeys.ports import (
    AuditLog,
    ChallengeStore,
    CredentialStore,
    IdentityProvider,
    RateLimiter,
    Verifier,
)

logger = logging.getLogger(__name__)

NO_PASSKEY_FOR_EMAIL = "No passkey found for this email."


class CeremonyOrchestrator:
    """Registration, authentication and credential management.

    Holds only its collaborators; relying-party configuration and the
    request context are arguments of every call.
    """

    def __init__(
        self,
        *,
        challenges: ChallengeStore,
        credentials: CredentialStore,
        rate_limiter: RateLimiter,
        audit_log: AuditLog,
        identity: IdentityProvider,
        verifier: Verifier,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.challenges = challenges
        self.credentials = credentials
        self.rate_limiter = rate_limiter
        self.audit_log = audit_log
        self.identity = identity
        self.verifier = verifier
        self.clock = clock

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    async def begin_registration(
        self, rp: RelyingPartyConfig, ctx: RequestContext, email: str
    ) -> CeremonyStart:
        await self._enforce_rate_limits(rp, ctx, Endpoint.REGISTER_START, email)

        user_handle = new_user_handle()
        nonce = new_nonce()
        account = await self.identity.find_user_by_email(email)
        existing = await self.credentials.list_for_user(account.id) if account else []

        options = build_registration_options(
            rp, email=email, user_handle=user_handle, nonce=nonce, exclude=existing
        )
        handle = await self.challenges.create(
            CeremonyKind.REGISTRATION, nonce, email, user_handle, rp.challenge_ttl, self.clock()
        )
        await self._audit(ctx, AuditEvent.REGISTRATION_STARTED, email=email)
        return CeremonyStart(ceremony_options=options, ceremony_id=handle.id)

    async def finish_registration(
        self,
        rp: RelyingPartyConfig,
        ctx: RequestContext,
        ceremony_id: str,
        response: dict[str, Any],
        authenticator_name: str | None = None,
    ) -> RegistrationOutcome:
        await self._enforce_rate_limits(rp, ctx, Endpoint.REGISTER_FINISH)

        challenge = await self._consume(
            ctx, ceremony_id, CeremonyKind.REGISTRATION, AuditEvent.REGISTRATION_FAILED
        )
        email = challenge.email or ""

        if not rp.origin_allowed(ctx.origin):
            outcome: VerifiedRegistration | Rejected = Rejected(
                reason=f"Origin {ctx.origin!r} is not allowed"
            )
        else:
            outcome = self.verifier.verify_registration(
                response, challenge.nonce, ctx.origin, rp.rp_id, rp.algorithms
            )
        if isinstance(outcome, Rejected):
            await self._audit(
                ctx,
                AuditEvent.REGISTRATION_FAILED,
                email=email,
                error_code=ErrorCode.VERIFICATION_FAILED,
                error_message=outcome.reason,
            )
            raise VerificationFailedError("Registration verification failed.")

        new = outcome.credential
        try:
            if await self.credentials.get(new.id) is not None:
                raise CredentialExistsError()
            account = await self.identity.find_user_by_email(email)
            if account is None:
                account = await self.identity.create_user(email)
            stored = await self.credentials.add(
                Credential(
                    id=new.id,
                    user_id=account.id,
                    webauthn_user_id=challenge.user_handle or "",
                    public_key=new.public_key,
                    counter=new.counter,
                    device_type=outcome.device_type,
                    backed_up=outcome.backed_up,
                    transports=list(new.transports),
                    authenticator_name=authenticator_name,
                    aaguid=new.aaguid,
                )
            )
        except CredentialExistsError as e:
            await self._audit(
                ctx,
                AuditEvent.REGISTRATION_FAILED,
                email=email,
                credential_id=new.id,
                error_code=e.code,
                error_message=e.message,
            )
            raise

        login_token = await self.identity.issue_login_token(account)
        await self._audit(
            ctx,
            AuditEvent.REGISTRATION_COMPLETED,
            user_id=account.id,
            credential_id=stored.id,
            email=email,
        )
        return RegistrationOutcome(passkey=stored, login_token=login_token)

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def begin_authentication(
        self, rp: RelyingPartyConfig, ctx: RequestContext, email: str | None = None
    ) -> CeremonyStart:
        await self._enforce_rate_limits(rp, ctx, Endpoint.LOGIN_START, email)

        allow: list[Credential] = []
        if email:
            account = await self.identity.find_user_by_email(email)
            allow = await self.credentials.list_for_user(account.id) if account else []
            if not allow:
                await self._audit(
                    ctx,
                    AuditEvent.AUTHENTICATION_FAILED,
                    email=email,
                    error_code=ErrorCode.CREDENTIAL_NOT_FOUND,
                )
                raise CredentialNotFoundError(NO_PASSKEY_FOR_EMAIL)

        nonce = new_nonce()
        options = build_authentication_options(rp, nonce=nonce, allow=allow)
        handle = await self.challenges.create(
            CeremonyKind.AUTHENTICATION, nonce, email, None, rp.challenge_ttl, self.clock()
        )
        await self._audit(ctx, AuditEvent.AUTHENTICATION_STARTED, email=email)
        return CeremonyStart(ceremony_options=options, ceremony_id=handle.id)

    async def finish_authentication(
        self,
        rp: RelyingPartyConfig,
        ctx: RequestContext,
        ceremony_id: str,
        response: dict[str, Any],
    ) -> AuthenticationOutcome:
        await self._enforce_rate_limits(rp, ctx, Endpoint.LOGIN_FINISH)

        challenge = await self._consume(
            ctx, ceremony_id, CeremonyKind.AUTHENTICATION, AuditEvent.AUTHENTICATION_FAILED
        )

        credential_id = response.get("id")
        credential = (
            await self.credentials.get(credential_id)
            if isinstance(credential_id, str) and credential_id
            else None
        )
        if credential is None:
            await self._audit(
                ctx,
                AuditEvent.AUTHENTICATION_FAILED,
                email=challenge.email,
                credential_id=credential_id if isinstance(credential_id, str) else None,
                error_code=ErrorCode.CREDENTIAL_NOT_FOUND,
            )
            raise CredentialNotFoundError("Credential not found.")

        if challenge.email:
            named = await self.identity.find_user_by_email(challenge.email)
            if named is None or named.id != credential.user_id:
                await self._authentication_rejected(
                    ctx,
                    credential,
                    challenge,
                    Rejected(reason="Credential does not belong to the requested account"),
                )

        if not rp.origin_allowed(ctx.origin):
            auth_outcome: VerifiedAuthentication | Rejected = Rejected(
                reason=f"Origin {ctx.origin!r} is not allowed"
            )
        else:
            auth_outcome = self.verifier.verify_authentication(
                response,
                challenge.nonce,
                ctx.origin,
                rp.rp_id,
                credential.public_key,
                credential.counter,
                rp.allow_zero_sign_count,
            )
        if isinstance(auth_outcome, Rejected):
            await self._authentication_rejected(ctx, credential, challenge, auth_outcome)

        now = self.clock()
        advanced = await self.credentials.advance_counter(
            credential.id,
            credential.counter,
            auth_outcome.new_counter,
            now,
            auth_outcome.backed_up,
        )
        if not advanced:
            await self._authentication_rejected(
                ctx,
                credential,
                challenge,
                Rejected(reason="Stored sign count changed concurrently", counter_mismatch=True),
            )

        account = await self.identity.get_user(credential.user_id)
        if account is None:
            raise UserNotFoundError()

        login_token = await self.identity.issue_login_token(account)
        await self._audit(
            ctx,
            AuditEvent.AUTHENTICATION_COMPLETED,
            user_id=account.id,
            credential_id=credential.id,
            email=account.email,
        )
        return AuthenticationOutcome(
            login_token=login_token, email=account.email, credential_id=credential.id
        )

    async def _authentication_rejected(
        self,
        ctx: RequestContext,
        credential: Credential,
        challenge: Challenge,
        rejected: Rejected,
    ) -> NoReturn:
        if rejected.counter_mismatch:
            await self._audit(
                ctx,
                AuditEvent.COUNTER_MISMATCH,
                user_id=credential.user_id,
                credential_id=credential.id,
                email=challenge.email,
                metadata={"storedCounter": credential.counter},
                error_message=rejected.reason,
            )
        await self._audit(
            ctx,
            AuditEvent.AUTHENTICATION_FAILED,
            user_id=credential.user_id,
            credential_id=credential.id,
            email=challenge.email,
            error_code=ErrorCode.VERIFICATION_FAILED,
            error_message=rejected.reason,
        )
        raise VerificationFailedError("Authentication verification failed.")

    # ------------------------------------------------------------------
    # Credential management
    # ------------------------------------------------------------------

    async def list_passkeys(self, rp: RelyingPartyConfig, ctx: RequestContext) -> list[Credential]:
        caller = await self._require_caller(ctx)
        await self._enforce_rate_limits(rp, ctx, Endpoint.PASSKEYS_LIST)
        return await self.credentials.list_for_user(caller.id)

    async def remove_passkey(
        self, rp: RelyingPartyConfig, ctx: RequestContext, credential_id: str
    ) -> None:
        caller = await self._require_caller(ctx)
        await self._enforce_rate_limits(rp, ctx, Endpoint.PASSKEYS_REMOVE)
        if not await self.credentials.remove(credential_id, caller.id):
            raise CredentialNotFoundError()
        await self._audit(
            ctx, AuditEvent.PASSKEY_REMOVED, user_id=caller.id, credential_id=credential_id
        )

    async def rename_passkey(
        self,
        rp: RelyingPartyConfig,
        ctx: RequestContext,
        credential_id: str,
        authenticator_name: str,
    ) -> Credential:
        caller = await self._require_caller(ctx)
        await self._enforce_rate_limits(rp, ctx, Endpoint.PASSKEYS_UPDATE)
        updated = await self.credentials.rename(credential_id, caller.id, authenticator_name)
        if updated is None:
            raise CredentialNotFoundError()
        await self._audit(
            ctx,
            AuditEvent.PASSKEY_UPDATED,
            user_id=caller.id,
            credential_id=credential_id,
            metadata={"authenticatorName": authenticator_name},
        )
        return updated

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    async def _require_caller(self, ctx: RequestContext) -> Account:
        if not ctx.bearer_token:
            raise UnauthorizedError()
        account = await self.identity.validate_session(ctx.bearer_token)
        if account is None:
            raise UnauthorizedError()
        return account

    async def _enforce_rate_limits(
        self,
        rp: RelyingPartyConfig,
        ctx: RequestContext,
        endpoint: Endpoint,
        email: str | None = None,
    ) -> None:
        checks = [(ctx.ip_address, IdentifierKind.IP, rp.ip_ceiling)]
        if email:
            checks.append((email, IdentifierKind.EMAIL, rp.email_ceiling))

        for identifier, kind, ceiling in checks:
            decision = await self.rate_limiter.check(
                identifier, kind, endpoint, ceiling, rp.rate_limit_window_seconds, self.clock()
            )
            if decision.blocked:
                logger.warning(
                    "Rate limit exceeded: %s=%s endpoint=%s attempts=%d",
                    kind,
                    identifier,
                    endpoint,
                    decision.attempt_count,
                )
                await self._audit(
                    ctx,
                    AuditEvent.RATE_LIMIT_EXCEEDED,
                    email=email,
                    metadata={
                        "endpoint": str(endpoint),
                        "identifierType": str(kind),
                        "attemptCount": decision.attempt_count,
                    },
                    error_code=ErrorCode.RATE_LIMITED,
                )
                raise RateLimitedError()

    async def _consume(
        self,
        ctx: RequestContext,
        ceremony_id: str,
        kind: CeremonyKind,
        failure_event: AuditEvent,
    ) -> Challenge:
        result = await self.challenges.consume(ceremony_id, kind, self.clock())
        if isinstance(result, ChallengeNotFound):
            await self._audit(
                ctx,
                failure_event,
                metadata={"ceremonyId": ceremony_id},
                error_code=ErrorCode.CHALLENGE_MISMATCH,
            )
            raise ChallengeMismatchError()
        if isinstance(result, ChallengeExpired):
            await self._audit(
                ctx,
                AuditEvent.CHALLENGE_EXPIRED,
                email=result.challenge.email,
                metadata={"ceremonyId": ceremony_id, "type": str(kind)},
                error_code=ErrorCode.CHALLENGE_EXPIRED,
            )
            raise ChallengeExpiredError()
        return result

    async def _audit(
        self,
        ctx: RequestContext,
        event: AuditEvent,
        *,
        user_id: str | None = None,
        credential_id: str | None = None,
        email: str | None = None,
        metadata: dict[str, Any] | None = None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        record = AuditRecord(
            event=event,
            user_id=user_id,
            credential_id=credential_id,
            email=email,
            ip_address=ctx.ip_address,
            user_agent=ctx.user_agent,
            origin=ctx.origin,
            metadata=metadata,
            error_code=str(error_code) if error_code else None,
            error_message=error_message,
        )
        try:
            await self.audit_log.record(record)
        except Exception:
            logger.exception("Failed to write audit event %s", event)

