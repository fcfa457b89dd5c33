"""Unit tests for listing, removing and renaming passkeys."""

import pytest

from src.exceptions import CredentialNotFoundError, RateLimitedError, UnauthorizedError
from src.passkeys.models import AuditEvent
from tests.helpers.fakes import credential_id, make_ctx, make_rp, register_passkey

ALICE = "alice@example.com"
BOB = "bob@example.com"


async def _session_for(harness, email):
    account = harness.identity.accounts[email]
    return make_ctx(bearer_token=harness.identity.open_session(account))


@pytest.mark.asyncio
class TestCallerAuthentication:
    """Management calls reject callers without a valid session."""

    async def test_missing_bearer_touches_no_store(self, harness):
        with pytest.raises(UnauthorizedError) as exc_info:
            await harness.orchestrator.list_passkeys(make_rp(), make_ctx())

        assert exc_info.value.status_code == 401
        assert harness.identity.validate_calls == 0
        assert harness.credentials.calls == []
        assert harness.rate_limiter.counts == {}

    async def test_invalid_bearer_touches_only_identity(self, harness):
        ctx = make_ctx(bearer_token="forged")

        with pytest.raises(UnauthorizedError):
            await harness.orchestrator.remove_passkey(make_rp(), ctx, credential_id("laptop"))

        assert harness.identity.validate_calls == 1
        assert harness.credentials.calls == []
        assert harness.audit_log.records == []

    async def test_management_calls_are_rate_limited_per_ip(self, harness):
        rp = make_rp(ip_ceiling=2)
        await register_passkey(harness, rp, ALICE, "laptop")
        ctx = await _session_for(harness, ALICE)

        await harness.orchestrator.list_passkeys(rp, ctx)
        await harness.orchestrator.list_passkeys(rp, ctx)
        with pytest.raises(RateLimitedError):
            await harness.orchestrator.list_passkeys(rp, ctx)


@pytest.mark.asyncio
class TestListPasskeys:
    async def test_lists_only_callers_credentials(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, ALICE, "laptop")
        await register_passkey(harness, rp, ALICE, "phone")
        await register_passkey(harness, rp, BOB, "bobs-key")

        credentials = await harness.orchestrator.list_passkeys(
            rp, await _session_for(harness, ALICE)
        )

        assert {c.id for c in credentials} == {credential_id("laptop"), credential_id("phone")}

    async def test_empty_list_for_account_without_passkeys(self, harness):
        account = await harness.identity.create_user(ALICE)
        ctx = make_ctx(bearer_token=harness.identity.open_session(account))

        assert await harness.orchestrator.list_passkeys(make_rp(), ctx) == []


@pytest.mark.asyncio
class TestRemovePasskey:
    async def test_removes_own_credential(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, ALICE, "laptop")
        ctx = await _session_for(harness, ALICE)

        await harness.orchestrator.remove_passkey(rp, ctx, credential_id("laptop"))

        assert credential_id("laptop") not in harness.credentials.rows
        [record] = harness.audit_log.of(AuditEvent.PASSKEY_REMOVED)
        assert record.credential_id == credential_id("laptop")
        assert record.user_id == harness.identity.accounts[ALICE].id

    async def test_cannot_remove_another_accounts_credential(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, ALICE, "laptop")
        await register_passkey(harness, rp, BOB, "bobs-key")
        ctx = await _session_for(harness, ALICE)

        with pytest.raises(CredentialNotFoundError):
            await harness.orchestrator.remove_passkey(rp, ctx, credential_id("bobs-key"))

        assert credential_id("bobs-key") in harness.credentials.rows
        assert harness.audit_log.of(AuditEvent.PASSKEY_REMOVED) == []

    async def test_unknown_credential_is_not_found(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, ALICE, "laptop")

        with pytest.raises(CredentialNotFoundError):
            await harness.orchestrator.remove_passkey(
                rp, await _session_for(harness, ALICE), credential_id("missing")
            )


@pytest.mark.asyncio
class TestRenamePasskey:
    async def test_renames_own_credential(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, ALICE, "laptop")
        ctx = await _session_for(harness, ALICE)

        updated = await harness.orchestrator.rename_passkey(
            rp, ctx, credential_id("laptop"), "Personal MacBook"
        )

        assert updated.authenticator_name == "Personal MacBook"
        assert harness.credentials.rows[credential_id("laptop")].authenticator_name == (
            "Personal MacBook"
        )
        [record] = harness.audit_log.of(AuditEvent.PASSKEY_UPDATED)
        assert record.metadata == {"authenticatorName": "Personal MacBook"}

    async def test_cannot_rename_another_accounts_credential(self, harness):
        rp = make_rp()
        await register_passkey(harness, rp, ALICE, "laptop")
        await register_passkey(harness, rp, BOB, "bobs-key", name="Bob's key")
        ctx = await _session_for(harness, ALICE)

        with pytest.raises(CredentialNotFoundError):
            await harness.orchestrator.rename_passkey(rp, ctx, credential_id("bobs-key"), "Mine")

        assert harness.credentials.rows[credential_id("bobs-key")].authenticator_name == (
            "Bob's key"
        )
