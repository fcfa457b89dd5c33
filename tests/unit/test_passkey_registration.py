"""Unit tests for the registration ceremony.

Runs CeremonyOrchestrator against the in-memory stores in
tests/helpers/fakes.py with a frozen clock.
"""

import pytest

from src.exceptions import (
    ChallengeExpiredError,
    ChallengeMismatchError,
    CredentialExistsError,
    ErrorCode,
    VerificationFailedError,
)
from src.passkeys.models import AuditEvent, CeremonyKind, DeviceType
from tests.helpers.fakes import (
    BrokenAuditLog,
    credential_id,
    make_ctx,
    make_harness,
    make_rp,
    register_passkey,
)

EMAIL = "alice@example.com"


@pytest.mark.asyncio
class TestBeginRegistration:
    """Tests for CeremonyOrchestrator.begin_registration."""

    async def test_returns_creation_options_bound_to_stored_challenge(self, harness):
        rp = make_rp()

        start = await harness.orchestrator.begin_registration(rp, make_ctx(), EMAIL)

        stored = harness.challenges.rows[start.ceremony_id]
        assert stored.kind == CeremonyKind.REGISTRATION
        assert stored.email == EMAIL
        assert stored.user_handle
        assert start.ceremony_options["challenge"] == stored.nonce
        assert start.ceremony_options["rp"] == {"id": "app.example.com", "name": "Example"}
        assert start.ceremony_options["user"]["name"] == EMAIL
        assert start.ceremony_options["attestation"] == "none"

    async def test_options_use_preferred_resident_key_and_verification(self, harness):
        start = await harness.orchestrator.begin_registration(make_rp(), make_ctx(), EMAIL)

        selection = start.ceremony_options["authenticatorSelection"]
        assert selection["residentKey"] == "preferred"
        assert selection["userVerification"] == "preferred"
        algs = [p["alg"] for p in start.ceremony_options["pubKeyCredParams"]]
        assert algs == [-7, -257]

    async def test_challenge_expires_after_ttl(self, harness, now):
        rp = make_rp()

        start = await harness.orchestrator.begin_registration(rp, make_ctx(), EMAIL)

        assert harness.challenges.rows[start.ceremony_id].expires_at == now + rp.challenge_ttl

    async def test_every_ceremony_gets_a_fresh_nonce_and_user_handle(self, harness):
        rp = make_rp()

        first = await harness.orchestrator.begin_registration(rp, make_ctx(), EMAIL)
        second = await harness.orchestrator.begin_registration(rp, make_ctx(), EMAIL)

        a = harness.challenges.rows[first.ceremony_id]
        b = harness.challenges.rows[second.ceremony_id]
        assert a.nonce != b.nonce
        assert a.user_handle != b.user_handle

    async def test_existing_credentials_are_excluded(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")

        start = await harness.orchestrator.begin_registration(rp, make_ctx(), EMAIL)

        excluded = [c["id"] for c in start.ceremony_options["excludeCredentials"]]
        assert excluded == [credential_id("laptop")]

    async def test_records_started_event(self, harness):
        await harness.orchestrator.begin_registration(make_rp(), make_ctx(), EMAIL)

        [record] = harness.audit_log.of(AuditEvent.REGISTRATION_STARTED)
        assert record.email == EMAIL
        assert record.ip_address == "203.0.113.7"
        assert record.user_agent == "pytest"


@pytest.mark.asyncio
class TestFinishRegistration:
    """Tests for CeremonyOrchestrator.finish_registration."""

    async def test_stores_credential_and_issues_login_token(self, harness, now):
        rp = make_rp()
        ctx = make_ctx()
        start = await harness.orchestrator.begin_registration(rp, ctx, EMAIL)
        user_handle = harness.challenges.rows[start.ceremony_id].user_handle

        outcome = await harness.orchestrator.finish_registration(
            rp, ctx, start.ceremony_id, {"id": credential_id("laptop")}, "Work laptop"
        )

        account = harness.identity.accounts[EMAIL]
        stored = harness.credentials.rows[credential_id("laptop")]
        assert stored.user_id == account.id
        assert stored.webauthn_user_id == user_handle
        assert stored.counter == 0
        assert stored.device_type == DeviceType.MULTI_DEVICE
        assert stored.backed_up is True
        assert stored.authenticator_name == "Work laptop"
        assert outcome.passkey.id == credential_id("laptop")
        assert harness.identity.login_tokens[outcome.login_token] == account.id

    async def test_records_completed_event(self, harness):
        outcome = await register_passkey(harness, make_rp(), EMAIL, "laptop")

        [record] = harness.audit_log.of(AuditEvent.REGISTRATION_COMPLETED)
        assert record.credential_id == outcome.passkey.id
        assert record.user_id == harness.identity.accounts[EMAIL].id
        assert record.email == EMAIL

    async def test_second_passkey_joins_existing_account(self, harness):
        rp = make_rp()

        first = await register_passkey(harness, rp, EMAIL, "laptop")
        second = await register_passkey(harness, rp, EMAIL, "phone")

        assert len(harness.identity.accounts) == 1
        assert first.passkey.user_id == second.passkey.user_id

    async def test_challenge_is_single_use(self, harness):
        rp = make_rp()
        ctx = make_ctx()
        start = await harness.orchestrator.begin_registration(rp, ctx, EMAIL)
        await harness.orchestrator.finish_registration(
            rp, ctx, start.ceremony_id, {"id": credential_id("laptop")}
        )

        with pytest.raises(ChallengeMismatchError):
            await harness.orchestrator.finish_registration(
                rp, ctx, start.ceremony_id, {"id": credential_id("phone")}
            )

        assert credential_id("phone") not in harness.credentials.rows
        failed = harness.audit_log.of(AuditEvent.REGISTRATION_FAILED)
        assert [r.error_code for r in failed] == [ErrorCode.CHALLENGE_MISMATCH]

    async def test_unknown_ceremony_id_is_a_mismatch(self, harness):
        with pytest.raises(ChallengeMismatchError) as exc_info:
            await harness.orchestrator.finish_registration(
                make_rp(), make_ctx(), "no-such-ceremony", {"id": credential_id("laptop")}
            )

        assert exc_info.value.code == ErrorCode.CHALLENGE_MISMATCH
        assert exc_info.value.status_code == 400

    async def test_authentication_challenge_cannot_finish_registration(self, harness):
        rp = make_rp()
        ctx = make_ctx()
        start = await harness.orchestrator.begin_authentication(rp, ctx)

        with pytest.raises(ChallengeMismatchError):
            await harness.orchestrator.finish_registration(
                rp, ctx, start.ceremony_id, {"id": credential_id("laptop")}
            )

        assert harness.credentials.rows == {}

    async def test_expired_challenge_is_rejected_and_deleted(self, harness):
        rp = make_rp()
        ctx = make_ctx()
        start = await harness.orchestrator.begin_registration(rp, ctx, EMAIL)
        harness.clock.advance(minutes=5)

        with pytest.raises(ChallengeExpiredError):
            await harness.orchestrator.finish_registration(
                rp, ctx, start.ceremony_id, {"id": credential_id("laptop")}
            )

        assert start.ceremony_id not in harness.challenges.rows
        [record] = harness.audit_log.of(AuditEvent.CHALLENGE_EXPIRED)
        assert record.email == EMAIL
        assert record.error_code == ErrorCode.CHALLENGE_EXPIRED
        assert harness.verifier.registration_calls == 0

    async def test_garbage_attestation_stores_nothing(self, harness):
        rp = make_rp()
        ctx = make_ctx()
        start = await harness.orchestrator.begin_registration(rp, ctx, EMAIL)

        with pytest.raises(VerificationFailedError):
            await harness.orchestrator.finish_registration(
                rp, ctx, start.ceremony_id, {"id": "x", "invalid": True}
            )

        assert harness.credentials.rows == {}
        assert harness.identity.accounts == {}
        assert start.ceremony_id not in harness.challenges.rows
        [record] = harness.audit_log.of(AuditEvent.REGISTRATION_FAILED)
        assert record.error_code == ErrorCode.VERIFICATION_FAILED
        assert record.error_message == "malformed response"

    async def test_response_signed_over_other_nonce_is_rejected(self, harness):
        rp = make_rp()
        ctx = make_ctx()
        start = await harness.orchestrator.begin_registration(rp, ctx, EMAIL)

        with pytest.raises(VerificationFailedError):
            await harness.orchestrator.finish_registration(
                rp,
                ctx,
                start.ceremony_id,
                {"id": credential_id("laptop"), "challenge": "c29tZXRoaW5nLWVsc2U"},
            )

        assert harness.credentials.rows == {}

    async def test_origin_outside_allow_list_is_rejected_before_verification(self, harness):
        rp = make_rp()
        start = await harness.orchestrator.begin_registration(rp, make_ctx(), EMAIL)

        with pytest.raises(VerificationFailedError):
            await harness.orchestrator.finish_registration(
                rp,
                make_ctx(origin="https://evil.example.net"),
                start.ceremony_id,
                {"id": credential_id("laptop")},
            )

        assert harness.verifier.registration_calls == 0
        assert harness.credentials.rows == {}

    async def test_credential_id_registered_elsewhere_is_refused(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "shared")

        with pytest.raises(CredentialExistsError) as exc_info:
            await register_passkey(harness, rp, "bob@example.com", "shared")

        assert exc_info.value.status_code == 409
        assert "bob@example.com" not in harness.identity.accounts
        owner = harness.identity.accounts[EMAIL].id
        assert harness.credentials.rows[credential_id("shared")].user_id == owner

    async def test_audit_outage_does_not_fail_the_ceremony(self, now):
        h = make_harness(now, audit_log=BrokenAuditLog())

        outcome = await register_passkey(h, make_rp(), EMAIL, "laptop")

        assert outcome.login_token
        assert credential_id("laptop") in h.credentials.rows
