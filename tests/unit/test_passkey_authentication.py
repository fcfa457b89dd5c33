"""Unit tests for the authentication ceremony."""

import asyncio

import pytest

from src.exceptions import (
    ChallengeMismatchError,
    CredentialNotFoundError,
    ErrorCode,
    UserNotFoundError,
    VerificationFailedError,
)
from src.passkeys.models import AuditEvent, CeremonyKind
from src.passkeys.orchestrator import NO_PASSKEY_FOR_EMAIL
from tests.helpers.fakes import credential_id, make_ctx, make_rp, register_passkey

EMAIL = "alice@example.com"


async def _login(harness, rp, response, *, email=EMAIL, ctx=None):
    ctx = ctx or make_ctx()
    start = await harness.orchestrator.begin_authentication(rp, ctx, email)
    return await harness.orchestrator.finish_authentication(rp, ctx, start.ceremony_id, response)


@pytest.mark.asyncio
class TestBeginAuthentication:
    """Tests for CeremonyOrchestrator.begin_authentication."""

    async def test_named_account_lists_its_credentials(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")
        await register_passkey(harness, rp, EMAIL, "phone")

        start = await harness.orchestrator.begin_authentication(rp, make_ctx(), EMAIL)

        allowed = {c["id"] for c in start.ceremony_options["allowCredentials"]}
        assert allowed == {credential_id("laptop"), credential_id("phone")}
        stored = harness.challenges.rows[start.ceremony_id]
        assert stored.kind == CeremonyKind.AUTHENTICATION
        assert stored.email == EMAIL
        assert start.ceremony_options["challenge"] == stored.nonce
        assert start.ceremony_options["rpId"] == "app.example.com"

    async def test_discoverable_request_omits_allow_list(self, harness):
        start = await harness.orchestrator.begin_authentication(make_rp(), make_ctx())

        assert "allowCredentials" not in start.ceremony_options
        assert harness.challenges.rows[start.ceremony_id].email is None
        assert harness.audit_log.events == [AuditEvent.AUTHENTICATION_STARTED]

    async def test_unknown_email_creates_no_challenge(self, harness):
        with pytest.raises(CredentialNotFoundError) as exc_info:
            await harness.orchestrator.begin_authentication(
                make_rp(), make_ctx(), "nobody@example.com"
            )

        assert exc_info.value.message == NO_PASSKEY_FOR_EMAIL
        assert harness.challenges.rows == {}
        [record] = harness.audit_log.of(AuditEvent.AUTHENTICATION_FAILED)
        assert record.error_code == ErrorCode.CREDENTIAL_NOT_FOUND

    async def test_account_without_passkeys_matches_unknown_email(self, harness):
        await harness.identity.create_user(EMAIL)

        with pytest.raises(CredentialNotFoundError) as exc_info:
            await harness.orchestrator.begin_authentication(make_rp(), make_ctx(), EMAIL)

        assert exc_info.value.message == NO_PASSKEY_FOR_EMAIL
        assert harness.challenges.rows == {}


@pytest.mark.asyncio
class TestFinishAuthentication:
    """Tests for CeremonyOrchestrator.finish_authentication."""

    async def test_valid_assertion_advances_counter_and_issues_token(self, harness, now):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")
        cid = credential_id("laptop")

        outcome = await _login(harness, rp, {"id": cid, "signCount": 1})

        stored = harness.credentials.rows[cid]
        assert stored.counter == 1
        assert stored.last_used_at == now
        assert outcome.email == EMAIL
        assert outcome.credential_id == cid
        assert outcome.login_token in harness.identity.login_tokens
        [record] = harness.audit_log.of(AuditEvent.AUTHENTICATION_COMPLETED)
        assert record.credential_id == cid

    async def test_discoverable_login_resolves_account_from_credential(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")

        outcome = await _login(
            harness, rp, {"id": credential_id("laptop"), "signCount": 3}, email=None
        )

        assert outcome.email == EMAIL

    async def test_assertion_refreshes_backup_state(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")
        cid = credential_id("laptop")
        assert harness.credentials.rows[cid].backed_up is True

        await _login(harness, rp, {"id": cid, "signCount": 1, "backedUp": False})

        assert harness.credentials.rows[cid].backed_up is False

    async def test_replayed_counter_is_rejected_and_counter_kept(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")
        cid = credential_id("laptop")
        await _login(harness, rp, {"id": cid, "signCount": 5})

        with pytest.raises(VerificationFailedError):
            await _login(harness, rp, {"id": cid, "signCount": 5})
        with pytest.raises(VerificationFailedError):
            await _login(harness, rp, {"id": cid, "signCount": 4})

        assert harness.credentials.rows[cid].counter == 5
        mismatches = harness.audit_log.of(AuditEvent.COUNTER_MISMATCH)
        assert len(mismatches) == 2
        assert mismatches[0].metadata == {"storedCounter": 5}

    async def test_counter_mismatch_is_audited_before_failure(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")

        with pytest.raises(VerificationFailedError):
            await _login(harness, rp, {"id": credential_id("laptop"), "signCount": 0})

        tail = harness.audit_log.events[-2:]
        assert tail == [AuditEvent.COUNTER_MISMATCH, AuditEvent.AUTHENTICATION_FAILED]

    async def test_zero_counter_allowed_only_when_configured(self, harness):
        strict = make_rp()
        lenient = make_rp(allow_zero_sign_count=True)
        await register_passkey(harness, strict, EMAIL, "laptop")
        cid = credential_id("laptop")

        with pytest.raises(VerificationFailedError):
            await _login(harness, strict, {"id": cid, "signCount": 0})
        outcome = await _login(harness, lenient, {"id": cid, "signCount": 0})

        assert outcome.credential_id == cid
        assert harness.credentials.rows[cid].counter == 0

    async def test_concurrent_assertions_with_same_counter_succeed_once(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")
        cid = credential_id("laptop")
        ctx = make_ctx()
        starts = [
            await harness.orchestrator.begin_authentication(rp, ctx, EMAIL) for _ in range(2)
        ]

        results = await asyncio.gather(
            *(
                harness.orchestrator.finish_authentication(
                    rp, ctx, s.ceremony_id, {"id": cid, "signCount": 1}
                )
                for s in starts
            ),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], VerificationFailedError)
        assert harness.credentials.rows[cid].counter == 1

    async def test_lost_compare_and_set_is_a_counter_mismatch(self, harness, monkeypatch):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")

        async def _raced(*args, **kwargs):
            return False

        monkeypatch.setattr(harness.credentials, "advance_counter", _raced)

        with pytest.raises(VerificationFailedError):
            await _login(harness, rp, {"id": credential_id("laptop"), "signCount": 1})

        assert len(harness.audit_log.of(AuditEvent.COUNTER_MISMATCH)) == 1
        assert harness.audit_log.of(AuditEvent.AUTHENTICATION_COMPLETED) == []

    async def test_unknown_credential_is_not_found(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")

        with pytest.raises(CredentialNotFoundError):
            await _login(harness, rp, {"id": credential_id("stolen"), "signCount": 1})

        [record] = harness.audit_log.of(AuditEvent.AUTHENTICATION_FAILED)
        assert record.credential_id == credential_id("stolen")
        assert record.error_code == ErrorCode.CREDENTIAL_NOT_FOUND

    async def test_credential_of_another_account_is_rejected(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")
        await register_passkey(harness, rp, "bob@example.com", "bobs-phone")

        with pytest.raises(VerificationFailedError):
            await _login(harness, rp, {"id": credential_id("bobs-phone"), "signCount": 1})

        assert harness.credentials.rows[credential_id("bobs-phone")].counter == 0
        assert harness.verifier.authentication_calls == 0

    async def test_bad_signature_leaves_counter_unchanged(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")
        cid = credential_id("laptop")

        with pytest.raises(VerificationFailedError):
            await _login(harness, rp, {"id": cid, "signCount": 9, "invalid": True})

        assert harness.credentials.rows[cid].counter == 0
        assert harness.audit_log.of(AuditEvent.COUNTER_MISMATCH) == []

    async def test_registration_challenge_cannot_finish_authentication(self, harness):
        rp = make_rp()
        ctx = make_ctx()
        await register_passkey(harness, rp, EMAIL, "laptop")
        start = await harness.orchestrator.begin_registration(rp, ctx, EMAIL)

        with pytest.raises(ChallengeMismatchError):
            await harness.orchestrator.finish_authentication(
                rp, ctx, start.ceremony_id, {"id": credential_id("laptop"), "signCount": 1}
            )

    async def test_deleted_account_is_user_not_found(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, EMAIL, "laptop")
        start = await harness.orchestrator.begin_authentication(rp, make_ctx())
        del harness.identity.accounts[EMAIL]

        with pytest.raises(UserNotFoundError):
            await harness.orchestrator.finish_authentication(
                rp, make_ctx(), start.ceremony_id, {"id": credential_id("laptop"), "signCount": 1}
            )
