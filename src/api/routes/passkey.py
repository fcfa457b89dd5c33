"""Passkey protocol endpoint.

Every call is ``POST /passkey-auth`` with an envelope naming the
operation:

    {"endpoint": "/register/start", "data": {"email": "a@example.com"}}

Registration and authentication (public):
- /register/start, /register/finish
- /login/start, /login/finish

Credential management (Bearer session required):
- /passkeys/list, /passkeys/remove, /passkeys/update

Responses are ``{"success": true, "data": {...}}`` or
``{"success": false, "error": {"code", "message"}}`` with the HTTP
status of the error kind.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from src.api.deps import OrchestratorDep, RelyingPartyDep
from src.api.schemas import (
    CeremonyStartResult,
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
    UpdatePasskeyData,
    UpdatePasskeyResult,
)
from src.api.utils import (
    build_request_context,
    ensure_correlation_id,
    envelope_error,
    envelope_success,
)
from src.exceptions import ErrorCode, InvalidInputError, PasskeyError
from src.passkeys.config import RelyingPartyConfig
from src.passkeys.models import Endpoint, RequestContext
from src.passkeys.orchestrator import CeremonyOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Passkeys"])

Handler = Callable[
    [CeremonyOrchestrator, RelyingPartyConfig, RequestContext, Any],
    Awaitable[BaseModel],
]


# =============================================================================
# Operation handlers
# =============================================================================


async def _register_start(
    orchestrator: CeremonyOrchestrator,
    rp: RelyingPartyConfig,
    ctx: RequestContext,
    data: RegisterStartData,
) -> CeremonyStartResult:
    start = await orchestrator.begin_registration(rp, ctx, data.email)
    return CeremonyStartResult(
        ceremony_options=start.ceremony_options, ceremony_id=start.ceremony_id
    )


async def _register_finish(
    orchestrator: CeremonyOrchestrator,
    rp: RelyingPartyConfig,
    ctx: RequestContext,
    data: RegisterFinishData,
) -> RegisterFinishResult:
    outcome = await orchestrator.finish_registration(
        rp, ctx, data.ceremony_id, data.response, data.authenticator_name
    )
    return RegisterFinishResult(
        verified=True,
        passkey=PasskeyInfo.from_credential(outcome.passkey),
        login_token=outcome.login_token,
    )


async def _login_start(
    orchestrator: CeremonyOrchestrator,
    rp: RelyingPartyConfig,
    ctx: RequestContext,
    data: LoginStartData,
) -> CeremonyStartResult:
    start = await orchestrator.begin_authentication(rp, ctx, data.email)
    return CeremonyStartResult(
        ceremony_options=start.ceremony_options, ceremony_id=start.ceremony_id
    )


async def _login_finish(
    orchestrator: CeremonyOrchestrator,
    rp: RelyingPartyConfig,
    ctx: RequestContext,
    data: LoginFinishData,
) -> LoginFinishResult:
    outcome = await orchestrator.finish_authentication(rp, ctx, data.ceremony_id, data.response)
    return LoginFinishResult(verified=True, login_token=outcome.login_token, email=outcome.email)


async def _list_passkeys(
    orchestrator: CeremonyOrchestrator,
    rp: RelyingPartyConfig,
    ctx: RequestContext,
    data: BaseModel,
) -> PasskeyListResult:
    credentials = await orchestrator.list_passkeys(rp, ctx)
    return PasskeyListResult(passkeys=[PasskeyInfo.from_credential(c) for c in credentials])


async def _remove_passkey(
    orchestrator: CeremonyOrchestrator,
    rp: RelyingPartyConfig,
    ctx: RequestContext,
    data: RemovePasskeyData,
) -> RemovePasskeyResult:
    await orchestrator.remove_passkey(rp, ctx, data.credential_id)
    return RemovePasskeyResult(removed=True)


async def _update_passkey(
    orchestrator: CeremonyOrchestrator,
    rp: RelyingPartyConfig,
    ctx: RequestContext,
    data: UpdatePasskeyData,
) -> UpdatePasskeyResult:
    credential = await orchestrator.rename_passkey(
        rp, ctx, data.credential_id, data.authenticator_name
    )
    return UpdatePasskeyResult(passkey=PasskeyInfo.from_credential(credential))


class _NoData(BaseModel):
    pass


_OPERATIONS: dict[Endpoint, tuple[type[BaseModel], Handler]] = {
    Endpoint.REGISTER_START: (RegisterStartData, _register_start),
    Endpoint.REGISTER_FINISH: (RegisterFinishData, _register_finish),
    Endpoint.LOGIN_START: (LoginStartData, _login_start),
    Endpoint.LOGIN_FINISH: (LoginFinishData, _login_finish),
    Endpoint.PASSKEYS_LIST: (_NoData, _list_passkeys),
    Endpoint.PASSKEYS_REMOVE: (RemovePasskeyData, _remove_passkey),
    Endpoint.PASSKEYS_UPDATE: (UpdatePasskeyData, _update_passkey),
}


def _first_validation_message(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request data."
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


# =============================================================================
# Endpoint
# =============================================================================


@router.post(
    "/passkey-auth",
    response_model=PasskeyResponse,
    summary="Passkey protocol",
    description="Dispatches registration, authentication and credential management calls.",
)
async def passkey_auth(
    body: PasskeyRequest,
    request: Request,
    orchestrator: OrchestratorDep,
    rp: RelyingPartyDep,
) -> JSONResponse:
    ctx = build_request_context(request)
    try:
        try:
            endpoint = Endpoint(body.endpoint)
        except ValueError:
            raise InvalidInputError(f"Unknown endpoint: {body.endpoint}") from None

        data_model, handler = _OPERATIONS[endpoint]
        try:
            data = data_model.model_validate(body.data)
        except ValidationError as e:
            raise InvalidInputError(_first_validation_message(e)) from e

        result = await handler(orchestrator, rp, ctx, data)
    except PasskeyError as e:
        logger.info("Passkey call %s failed: %s (%s)", body.endpoint, e.code, e.message)
        return envelope_error(e.code, e.message, e.status_code)
    except Exception:
        correlation_id = ensure_correlation_id()
        logger.exception(
            "Unhandled error in passkey call %s (correlation_id=%s)",
            body.endpoint,
            correlation_id,
        )
        return envelope_error(
            ErrorCode.UNKNOWN_ERROR,
            "An unexpected error occurred.",
            500,
            correlation_id=correlation_id,
        )

    return envelope_success(result.model_dump(by_alias=True, mode="json"))
