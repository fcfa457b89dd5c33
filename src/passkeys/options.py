"""Ceremony option payloads, built with py_webauthn.

The returned dicts are exactly what the browser passes to
``navigator.credentials.create()`` / ``.get()`` (after the usual
base64url decoding on the client).
"""

import json
import secrets
from typing import Any, cast

from webauthn import (
    generate_authentication_options,
    generate_registration_options,
    options_to_json,
)
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.structs import (
    AttestationConveyancePreference,
    AuthenticatorSelectionCriteria,
    AuthenticatorTransport,
    PublicKeyCredentialDescriptor,
    PublicKeyCredentialType,
    ResidentKeyRequirement,
    UserVerificationRequirement,
)

from src.passkeys.config import RelyingPartyConfig
from src.passkeys.models import Credential

NONCE_BYTES = 32
USER_HANDLE_BYTES = 32


def new_nonce() -> str:
    """A fresh base64url challenge from the OS CSPRNG."""
    return bytes_to_base64url(secrets.token_bytes(NONCE_BYTES))


def new_user_handle() -> str:
    """A pseudonymous WebAuthn user handle, unlinked to any account."""
    return bytes_to_base64url(secrets.token_bytes(USER_HANDLE_BYTES))


def _transports(values: list[str]) -> list[AuthenticatorTransport] | None:
    known = []
    for value in values:
        try:
            known.append(AuthenticatorTransport(value))
        except ValueError:
            continue
    return known or None


def _descriptors(credentials: list[Credential]) -> list[PublicKeyCredentialDescriptor]:
    return [
        PublicKeyCredentialDescriptor(
            id=base64url_to_bytes(c.id),
            type=PublicKeyCredentialType.PUBLIC_KEY,
            transports=_transports(c.transports),
        )
        for c in credentials
    ]


def _to_dict(options: Any) -> dict[str, Any]:
    return cast("dict[str, Any]", json.loads(options_to_json(options)))


def build_registration_options(
    rp: RelyingPartyConfig,
    *,
    email: str,
    user_handle: str,
    nonce: str,
    exclude: list[Credential],
) -> dict[str, Any]:
    """Creation options for a new passkey.

    ``exclude`` lists the account's existing credentials so the same
    authenticator is not registered twice.
    """
    options = generate_registration_options(
        rp_id=rp.rp_id,
        rp_name=rp.rp_name,
        user_id=user_handle.encode(),
        user_name=email,
        user_display_name=email,
        challenge=base64url_to_bytes(nonce),
        timeout=rp.timeout_ms,
        attestation=AttestationConveyancePreference.NONE,
        exclude_credentials=_descriptors(exclude),
        authenticator_selection=AuthenticatorSelectionCriteria(
            resident_key=ResidentKeyRequirement.PREFERRED,
            user_verification=UserVerificationRequirement.PREFERRED,
        ),
        supported_pub_key_algs=[COSEAlgorithmIdentifier(alg) for alg in rp.algorithms],
    )
    return _to_dict(options)


def build_authentication_options(
    rp: RelyingPartyConfig,
    *,
    nonce: str,
    allow: list[Credential],
) -> dict[str, Any]:
    """Request options; an empty ``allow`` yields a discoverable-credential request.

    For the discoverable flow ``allowCredentials`` is left out entirely
    so the authenticator offers whatever it holds for this rp id.
    """
    options = generate_authentication_options(
        rp_id=rp.rp_id,
        challenge=base64url_to_bytes(nonce),
        timeout=rp.timeout_ms,
        allow_credentials=_descriptors(allow) or None,
        user_verification=UserVerificationRequirement.PREFERRED,
    )
    payload = _to_dict(options)
    if not payload.get("allowCredentials"):
        payload.pop("allowCredentials", None)
    return payload
