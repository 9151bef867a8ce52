"""
Verification state machine for server-side connections.

States:
- unverified: transport connection observed, no credential outcome yet
- verified: credential accepted (final)
- rejected: credential refused (final)

Both outcomes are final states, so a terminal state can never be left or
overwritten: Verified never becomes Unverified or Rejected, and Rejected never
becomes Verified.
"""

from typing import Any

from statemachine import State, StateMachine

from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


class VerificationStateMachine(StateMachine):
    """
    State machine for one connection's verification lifecycle.

    Transitions:
    - unverified → verified: verify
    - unverified → rejected: reject
    """

    unverified = State("Unverified", initial=True)
    verified = State("Verified", final=True)
    rejected = State("Rejected", final=True)

    verify = unverified.to(verified)
    reject = unverified.to(rejected)

    def __init__(self, connection_id: int):
        # Set attributes before super().__init__() because on_enter_state runs during init
        self.connection_id = connection_id
        super().__init__()

    def on_enter_state(self, state: State, event: Any = None, **kwargs: Any) -> None:
        """Log every transition, including entry into the initial state."""
        logger.debug(
            "Connection verification state transition",
            connection_id=self.connection_id,
            trigger_event=str(event) if event else "initial",
            to_state=state.id,
        )

    @property
    def state_id(self) -> str:
        return self.current_state.id

    @property
    def is_terminal(self) -> bool:
        return self.current_state.final
