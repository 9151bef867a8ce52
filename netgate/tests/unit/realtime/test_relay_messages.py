"""
Unit tests for the relay allow-list.
"""

import pytest

from netgate.realtime.relay_messages import ChatMessage, PlayerInput, RelayOperation, StateUpdate, parse_relay_message


def test_parse_chat_message():
    message = parse_relay_message("chat_message", {"text": "hello"})
    assert isinstance(message, ChatMessage)
    assert message.args() == {"text": "hello"}


def test_parse_accepts_enum_operation():
    message = parse_relay_message(RelayOperation.PLAYER_INPUT, {"action": "jump", "pressed": True})
    assert isinstance(message, PlayerInput)
    assert message.operation == "player_input"


def test_parse_state_update():
    message = parse_relay_message("state_update", {"entity_id": "ship-1", "state": {"x": 1.5}})
    assert isinstance(message, StateUpdate)
    assert message.args() == {"entity_id": "ship-1", "state": {"x": 1.5}}


@pytest.mark.parametrize(
    ("operation", "args"),
    [
        ("kick_player", {"target": 3}),
        ("chat_message", {"text": ""}),
        ("chat_message", {"text": "x" * 501}),
        ("chat_message", {"text": "hi", "sender": "admin"}),
        ("chat_message", {"text": "hi", "operation": "player_input"}),
        ("player_input", {"action": "drop table", "pressed": True}),
        ("player_input", {"action": "jump"}),
        ("state_update", {"state": {}}),
        ("chat_message", "hi"),
        (None, {"text": "hi"}),
    ],
)
def test_parse_rejects_outside_allow_list(operation, args):
    """Test parse_relay_message() returns None for anything not relayable."""
    assert parse_relay_message(operation, args) is None
