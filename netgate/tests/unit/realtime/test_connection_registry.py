"""
Unit tests for the connection registry.
"""

from unittest.mock import MagicMock

from netgate.events.event_types import PlayerDisconnected
from netgate.realtime.connection_registry import ConnectionRegistry, VerificationState
from netgate.tests.conftest import published


def test_register_creates_unverified_entry(registry):
    entry = registry.register(2)
    assert entry.verification_state is VerificationState.UNVERIFIED
    assert 2 in registry
    assert len(registry) == 1
    assert registry.is_verified(2) is False


def test_register_duplicate_is_noop(registry):
    """Test register() on an existing id returns the existing entry unchanged."""
    first = registry.register(2)
    registry.mark_verified(2, {"name": "alice"})
    second = registry.register(2)
    assert second is first
    assert second.verification_state is VerificationState.VERIFIED
    assert len(registry) == 1


def test_mark_verified_stores_identity(registry):
    registry.register(2)
    assert registry.mark_verified(2, {"name": "alice"}) is True
    assert registry.is_verified(2) is True
    assert registry.get(2).display_name == "alice"
    assert registry.verified_connection_ids() == [2]


def test_verified_is_never_overwritten(registry):
    """Test a Verified entry cannot become Rejected or be re-verified."""
    registry.register(2)
    registry.mark_verified(2, {"name": "alice"})
    assert registry.mark_rejected(2) is False
    assert registry.mark_verified(2, {"name": "mallory"}) is False
    entry = registry.get(2)
    assert entry.verification_state is VerificationState.VERIFIED
    assert entry.identity_info == {"name": "alice"}


def test_rejected_is_never_overwritten(registry):
    """Test a Rejected entry cannot become Verified."""
    registry.register(3)
    assert registry.mark_rejected(3) is True
    assert registry.mark_verified(3, {"name": "alice"}) is False
    assert registry.get_state(3) is VerificationState.REJECTED
    assert registry.verified_connection_ids() == []


def test_marks_on_unknown_connection_return_false(registry):
    assert registry.mark_verified(99, {"name": "x"}) is False
    assert registry.mark_rejected(99) is False
    assert registry.get_state(99) is None


def test_unregister_verified_publishes_disconnect():
    """Test unregister() tells observers a verified player left."""
    event_bus = MagicMock()
    registry = ConnectionRegistry(event_bus)
    registry.register(2)
    registry.mark_verified(2, {"name": "alice"})

    entry = registry.unregister(2)

    assert entry is not None
    assert 2 not in registry
    events = published(event_bus, PlayerDisconnected)
    assert len(events) == 1
    assert events[0].connection_id == 2
    assert events[0].identity_info == {"name": "alice"}


def test_unregister_unverified_publishes_nothing():
    event_bus = MagicMock()
    registry = ConnectionRegistry(event_bus)
    registry.register(2)
    registry.register(3)
    registry.mark_rejected(3)

    registry.unregister(2)
    registry.unregister(3)

    event_bus.publish.assert_not_called()
    assert len(registry) == 0


def test_unregister_unknown_returns_none(registry):
    assert registry.unregister(42) is None


def test_iteration_snapshot(registry):
    registry.register(2)
    registry.register(3)
    for entry in registry:
        registry.unregister(entry.connection_id)
    assert len(registry) == 0
