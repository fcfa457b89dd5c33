"""Boundary to py_webauthn.

py_webauthn raises on any failed check (challenge, origin, rp id hash,
signature, malformed CBOR/JSON). Here every failure becomes a
``Rejected`` value, so callers branch on a result type instead of
catching library exceptions.
"""

import logging
from typing import Any

from webauthn import verify_authentication_response, verify_registration_response
from webauthn.helpers import base64url_to_bytes, bytes_to_base64url
from webauthn.helpers.cose import COSEAlgorithmIdentifier
from webauthn.helpers.structs import CredentialDeviceType

from src.passkeys.models import (
    DeviceType,
    NewCredential,
    Rejected,
    VerifiedAuthentication,
    VerifiedRegistration,
)

logger = logging.getLogger(__name__)


def _device_type(value: CredentialDeviceType) -> DeviceType:
    if value == CredentialDeviceType.MULTI_DEVICE:
        return DeviceType.MULTI_DEVICE
    return DeviceType.SINGLE_DEVICE


def _transports(response: dict[str, Any]) -> list[str]:
    inner = response.get("response")
    if not isinstance(inner, dict):
        return []
    transports = inner.get("transports") or []
    return [t for t in transports if isinstance(t, str)]


def counter_advances(stored: int, presented: int, *, allow_zero: bool = False) -> bool:
    """Strictly-increasing signature counter rule.

    With ``allow_zero`` the single case stored=0, presented=0 passes, for
    authenticators that never implement a counter.
    """
    if presented > stored:
        return True
    return allow_zero and stored == 0 and presented == 0


class WebAuthnVerifier:
    """Verifies attestation and assertion responses."""

    def verify_registration(
        self,
        response: dict[str, Any],
        expected_nonce: str,
        expected_origin: str,
        rp_id: str,
        algorithms: tuple[int, ...],
    ) -> VerifiedRegistration | Rejected:
        try:
            verification = verify_registration_response(
                credential=response,
                expected_challenge=base64url_to_bytes(expected_nonce),
                expected_rp_id=rp_id,
                expected_origin=expected_origin,
                require_user_verification=False,
                supported_pub_key_algs=[COSEAlgorithmIdentifier(a) for a in algorithms],
            )
        except Exception as e:
            logger.info("Registration response rejected: %s", e)
            return Rejected(reason=str(e) or type(e).__name__)

        return VerifiedRegistration(
            credential=NewCredential(
                id=bytes_to_base64url(verification.credential_id),
                public_key=verification.credential_public_key,
                counter=verification.sign_count,
                transports=_transports(response),
                aaguid=verification.aaguid or None,
            ),
            device_type=_device_type(verification.credential_device_type),
            backed_up=verification.credential_backed_up,
        )

    def verify_authentication(
        self,
        response: dict[str, Any],
        expected_nonce: str,
        expected_origin: str,
        rp_id: str,
        public_key: bytes,
        stored_counter: int,
        allow_zero_sign_count: bool = False,
    ) -> VerifiedAuthentication | Rejected:
        # The counter rule is applied below; py_webauthn's own check lets
        # 0 -> 0 through unconditionally, which is only allowed when opted in.
        try:
            verification = verify_authentication_response(
                credential=response,
                expected_challenge=base64url_to_bytes(expected_nonce),
                expected_rp_id=rp_id,
                expected_origin=expected_origin,
                credential_public_key=public_key,
                credential_current_sign_count=0,
                require_user_verification=False,
            )
        except Exception as e:
            logger.info("Authentication response rejected: %s", e)
            return Rejected(reason=str(e) or type(e).__name__)

        new_counter = verification.new_sign_count
        if not counter_advances(stored_counter, new_counter, allow_zero=allow_zero_sign_count):
            return Rejected(
                reason=f"Sign count {new_counter} is not greater than stored count {stored_counter}",
                counter_mismatch=True,
            )

        return VerifiedAuthentication(
            new_counter=new_counter, backed_up=verification.credential_backed_up
        )
