"""
Unit tests for join-credential verification.
"""

import asyncio
import hashlib

import pytest

from netgate.auth.credential_verifier import CredentialVerifier, JoinCredential, VerificationOutcome
from netgate.auth.identity_authority import CredentialCheckResult
from netgate.events.event_types import PlayerRejected, PlayerVerified
from netgate.exceptions import IdentityAuthorityUnavailableError
from netgate.realtime.connection_registry import VerificationState
from netgate.tests.conftest import published


@pytest.fixture
def verifier(registry, authority, event_bus):
    return CredentialVerifier(registry, authority, event_bus)


def _gated_authority(authority, result):
    """Make the authority block until the returned event is set."""
    gate = asyncio.Event()

    async def check(_token):
        await gate.wait()
        return result

    authority.check_credential.side_effect = check
    return gate


@pytest.mark.asyncio
async def test_valid_credential_verifies(registry, authority, event_bus, verifier):
    registry.register(2)

    outcome = await verifier.verify(2, JoinCredential("good-token"))

    assert outcome is VerificationOutcome.VERIFIED
    assert registry.get_state(2) is VerificationState.VERIFIED
    assert registry.get(2).identity_info == {"name": "alice"}
    authority.check_credential.assert_awaited_once_with("good-token")
    (event,) = published(event_bus, PlayerVerified)
    assert event.connection_id == 2
    assert event.identity_info == {"name": "alice"}


@pytest.mark.asyncio
async def test_invalid_credential_rejects(registry, authority, event_bus, verifier):
    authority.check_credential.return_value = CredentialCheckResult(valid=False, reason="expired")
    registry.register(2)

    outcome = await verifier.verify(2, JoinCredential("old-token"))

    assert outcome is VerificationOutcome.REJECTED
    assert registry.get_state(2) is VerificationState.REJECTED
    (event,) = published(event_bus, PlayerRejected)
    assert event.reason == "expired"
    assert published(event_bus, PlayerVerified) == []


@pytest.mark.asyncio
async def test_unreachable_authority_rejects_without_retry(registry, authority, event_bus, verifier):
    authority.check_credential.side_effect = IdentityAuthorityUnavailableError("down")
    registry.register(2)

    outcome = await verifier.verify(2, JoinCredential("token"))

    assert outcome is VerificationOutcome.REJECTED
    assert authority.check_credential.await_count == 1
    (event,) = published(event_bus, PlayerRejected)
    assert event.reason == "authority_unreachable"


@pytest.mark.asyncio
async def test_unexpected_authority_error_rejects(registry, authority, verifier):
    authority.check_credential.side_effect = RuntimeError("boom")
    registry.register(2)

    assert await verifier.verify(2, JoinCredential("token")) is VerificationOutcome.REJECTED
    assert registry.get_state(2) is VerificationState.REJECTED


@pytest.mark.asyncio
async def test_empty_credential_rejected_without_authority(registry, authority, verifier):
    registry.register(2)

    assert await verifier.verify(2, JoinCredential("")) is VerificationOutcome.REJECTED
    authority.check_credential.assert_not_awaited()


@pytest.mark.asyncio
async def test_identity_without_name_rejects(registry, authority, verifier):
    authority.check_credential.return_value = CredentialCheckResult(valid=True, identity={"id": 7})
    registry.register(2)

    assert await verifier.verify(2, JoinCredential("token")) is VerificationOutcome.REJECTED


@pytest.mark.asyncio
async def test_unknown_connection_is_discarded(registry, authority, verifier):
    assert await verifier.verify(9, JoinCredential("token")) is VerificationOutcome.DISCARDED
    authority.check_credential.assert_not_awaited()


@pytest.mark.asyncio
async def test_reverify_after_verified_is_protocol_violation(registry, authority, event_bus, verifier):
    """Test a second credential on a Verified connection leaves it Verified."""
    registry.register(2)
    await verifier.verify(2, JoinCredential("first"))
    authority.check_credential.return_value = CredentialCheckResult(valid=False, reason="invalid")

    outcome = await verifier.verify(2, JoinCredential("second"))

    assert outcome is VerificationOutcome.PROTOCOL_VIOLATION
    assert registry.get_state(2) is VerificationState.VERIFIED
    assert authority.check_credential.await_count == 1
    assert published(event_bus, PlayerRejected) == []


@pytest.mark.asyncio
async def test_reverify_after_rejected_is_protocol_violation(registry, authority, verifier):
    """Test a Rejected connection can never become Verified."""
    registry.register(2)
    registry.mark_rejected(2)

    assert await verifier.verify(2, JoinCredential("good-token")) is VerificationOutcome.PROTOCOL_VIOLATION
    assert registry.get_state(2) is VerificationState.REJECTED
    authority.check_credential.assert_not_awaited()


@pytest.mark.asyncio
async def test_consumed_credential_is_rejected_on_reuse(registry, authority, event_bus, verifier):
    """Test a credential that verified once cannot verify another connection."""
    registry.register(2)
    registry.register(3)
    await verifier.verify(2, JoinCredential("single-use"))

    outcome = await verifier.verify(3, JoinCredential("single-use"))

    assert outcome is VerificationOutcome.REJECTED
    assert authority.check_credential.await_count == 1
    rejected = published(event_bus, PlayerRejected)
    assert [e.reason for e in rejected] == ["already_consumed"]


@pytest.mark.asyncio
async def test_consumed_credentials_stored_as_digests(registry, verifier):
    registry.register(2)
    await verifier.verify(2, JoinCredential("secret-token"))

    assert "secret-token" not in verifier._consumed_digests
    assert hashlib.sha256(b"secret-token").hexdigest() in verifier._consumed_digests


@pytest.mark.asyncio
async def test_consumed_digests_expire_after_ttl(registry, authority, event_bus):
    """Test consumed digests are forgotten once the TTL passes, so the set stays bounded."""
    now = [1000.0]
    verifier = CredentialVerifier(registry, authority, event_bus, consumed_ttl_seconds=60.0, clock=lambda: now[0])
    for cid in (2, 3, 4, 5):
        registry.register(cid)
    await verifier.verify(2, JoinCredential("first"))
    now[0] += 30.0
    await verifier.verify(3, JoinCredential("second"))

    now[0] += 45.0
    assert await verifier.verify(4, JoinCredential("second")) is VerificationOutcome.REJECTED
    assert list(verifier._consumed_digests) == [JoinCredential("second").digest()]

    now[0] += 20.0
    outcome = await verifier.verify(5, JoinCredential("second"))

    assert outcome is VerificationOutcome.VERIFIED
    assert authority.check_credential.await_count == 3


@pytest.mark.asyncio
async def test_concurrent_attempts_first_wins(registry, authority, verifier):
    """Test a racing second attempt for the same connection is dropped."""
    gate = _gated_authority(authority, CredentialCheckResult(valid=True, identity={"name": "alice"}))
    registry.register(2)

    first = asyncio.create_task(verifier.verify(2, JoinCredential("a")))
    await asyncio.sleep(0)
    second = await verifier.verify(2, JoinCredential("b"))
    gate.set()

    assert second is VerificationOutcome.DISCARDED
    assert await first is VerificationOutcome.VERIFIED
    assert authority.check_credential.await_count == 1
    assert registry.get_state(2) is VerificationState.VERIFIED


@pytest.mark.asyncio
async def test_same_credential_racing_on_two_connections(registry, authority, verifier):
    """Test only one connection is admitted when both present one credential."""
    gate = _gated_authority(authority, CredentialCheckResult(valid=True, identity={"name": "alice"}))
    registry.register(2)
    registry.register(3)

    tasks = [asyncio.create_task(verifier.verify(cid, JoinCredential("shared"))) for cid in (2, 3)]
    await asyncio.sleep(0)
    gate.set()
    outcomes = await asyncio.gather(*tasks)

    assert sorted(outcomes) == sorted([VerificationOutcome.VERIFIED, VerificationOutcome.REJECTED])
    assert len(registry.verified_connection_ids()) == 1


@pytest.mark.asyncio
async def test_late_result_after_disconnect_is_discarded(registry, authority, event_bus, verifier):
    """Test a result arriving after the connection closed changes nothing."""
    gate = _gated_authority(authority, CredentialCheckResult(valid=True, identity={"name": "alice"}))
    registry.register(2)

    task = asyncio.create_task(verifier.verify(2, JoinCredential("token")))
    await asyncio.sleep(0)
    registry.unregister(2)
    gate.set()

    assert await task is VerificationOutcome.DISCARDED
    assert 2 not in registry
    assert published(event_bus, PlayerVerified) == []


@pytest.mark.asyncio
async def test_late_result_after_terminal_is_discarded(registry, authority, verifier):
    gate = _gated_authority(authority, CredentialCheckResult(valid=True, identity={"name": "alice"}))
    registry.register(2)

    task = asyncio.create_task(verifier.verify(2, JoinCredential("token")))
    await asyncio.sleep(0)
    registry.mark_rejected(2)
    gate.set()

    assert await task is VerificationOutcome.DISCARDED
    assert registry.get_state(2) is VerificationState.REJECTED


@pytest.mark.asyncio
async def test_rejected_credential_is_not_consumed(registry, authority, verifier):
    authority.check_credential.return_value = CredentialCheckResult(valid=False, reason="invalid")
    registry.register(2)
    await verifier.verify(2, JoinCredential("retry-me"))

    authority.check_credential.return_value = CredentialCheckResult(valid=True, identity={"name": "alice"})
    registry.register(3)

    assert await verifier.verify(3, JoinCredential("retry-me")) is VerificationOutcome.VERIFIED
