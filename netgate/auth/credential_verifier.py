"""
Join-credential verification for the netgate server.

A connection presents one credential. The verifier asks the identity
authority about it and records a single terminal outcome in the connection
registry. Every kind of failure (invalid, expired, already consumed,
authority unreachable) collapses to Rejected; nothing is retried.
"""

import hashlib
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from ..events.event_bus import EventBus
from ..events.event_types import LogMessage, PlayerRejected, PlayerVerified
from ..exceptions import IdentityAuthorityUnavailableError
from ..realtime.connection_registry import ConnectionRegistry, VerificationState
from ..structured_logging.enhanced_logging_config import get_logger
from .identity_authority import CredentialCheckResult, IdentityAuthority

logger = get_logger(__name__)

DEFAULT_CONSUMED_TTL_SECONDS = 3600.0


class VerificationOutcome(StrEnum):
    """Result of one verify() call."""

    VERIFIED = "verified"
    REJECTED = "rejected"
    # Connection already terminal: the attempt is ignored, the connection is not penalized further
    PROTOCOL_VIOLATION = "protocol_violation"
    # Lost a race, or the connection went away while the authority was answering
    DISCARDED = "discarded"


class RejectionReason(StrEnum):
    MISSING_CREDENTIAL = "missing_credential"
    ALREADY_CONSUMED = "already_consumed"
    AUTHORITY_UNREACHABLE = "authority_unreachable"
    INVALID_IDENTITY = "invalid_identity"
    INVALID = "invalid"


@dataclass(frozen=True)
class JoinCredential:
    """Single-use secret presented once per connection attempt."""

    token: str

    def digest(self) -> str:
        return hashlib.sha256(self.token.encode("utf-8")).hexdigest()


class CredentialVerifier:
    """Checks join credentials and records the outcome in the registry."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        authority: IdentityAuthority,
        event_bus: EventBus | None = None,
        consumed_ttl_seconds: float = DEFAULT_CONSUMED_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._registry = registry
        self._authority = authority
        self._event_bus = event_bus
        self._in_flight: set[int] = set()
        self._consumed_ttl = consumed_ttl_seconds
        self._clock = clock
        # Digest -> expiry on the clock; raw credentials are never kept
        self._consumed_digests: dict[str, float] = {}

    async def verify(self, connection_id: int, credential: JoinCredential) -> VerificationOutcome:
        """
        Verify the credential presented by a connection.

        Only meaningful while the connection is Unverified. If two attempts
        race for the same connection, the first one wins and the second is
        dropped silently.

        Args:
            connection_id: Connection that presented the credential
            credential: The presented credential

        Returns:
            The VerificationOutcome of this attempt
        """
        entry = self._registry.get(connection_id)
        if entry is None:
            logger.warning("Verification for unknown connection discarded", connection_id=connection_id)
            return VerificationOutcome.DISCARDED

        if entry.verification_state is not VerificationState.UNVERIFIED:
            logger.warning(
                "Protocol violation: verification attempt on a connection with a terminal state",
                connection_id=connection_id,
                verification_state=entry.verification_state.value,
            )
            return VerificationOutcome.PROTOCOL_VIOLATION

        if connection_id in self._in_flight:
            logger.debug("Concurrent verification attempt dropped", connection_id=connection_id)
            return VerificationOutcome.DISCARDED

        if not isinstance(credential.token, str) or not credential.token:
            return self._reject(connection_id, RejectionReason.MISSING_CREDENTIAL)

        digest = credential.digest()
        if self._is_consumed(digest):
            return self._reject(connection_id, RejectionReason.ALREADY_CONSUMED)

        self._in_flight.add(connection_id)
        try:
            result = await self._check(connection_id, credential.token)
        finally:
            self._in_flight.discard(connection_id)

        # The world may have moved on while the authority was answering
        entry = self._registry.get(connection_id)
        if entry is None or entry.verification_state is not VerificationState.UNVERIFIED:
            logger.info("Late verification result discarded", connection_id=connection_id, valid=result.valid)
            return VerificationOutcome.DISCARDED

        if not result.valid:
            return self._reject(connection_id, result.reason or RejectionReason.INVALID)

        name = result.identity.get("name")
        if not isinstance(name, str) or not name.strip():
            return self._reject(connection_id, RejectionReason.INVALID_IDENTITY)

        if self._is_consumed(digest):
            # Same credential verified on another connection while this one was waiting
            return self._reject(connection_id, RejectionReason.ALREADY_CONSUMED)

        if not self._registry.mark_verified(connection_id, result.identity):
            return VerificationOutcome.DISCARDED
        self._consumed_digests[digest] = self._clock() + self._consumed_ttl

        logger.info("Player verified", connection_id=connection_id, name=name)
        if self._event_bus is not None:
            self._event_bus.publish(PlayerVerified(connection_id=connection_id, identity_info=dict(result.identity)))
            self._event_bus.publish(LogMessage(message=f"Player {name} verified on connection {connection_id}"))
        return VerificationOutcome.VERIFIED

    def _is_consumed(self, digest: str) -> bool:
        """Forget consumed digests past their expiry, then look this one up."""
        now = self._clock()
        # Insertion order is expiry order with a fixed TTL on a monotonic clock
        expired = []
        for seen, expires_at in self._consumed_digests.items():
            if expires_at > now:
                break
            expired.append(seen)
        for seen in expired:
            del self._consumed_digests[seen]
        return digest in self._consumed_digests

    async def _check(self, connection_id: int, token: str) -> CredentialCheckResult:
        """Ask the authority; any failure to get an answer counts as an invalid credential."""
        try:
            return await self._authority.check_credential(token)
        except IdentityAuthorityUnavailableError:
            return CredentialCheckResult(valid=False, reason=RejectionReason.AUTHORITY_UNREACHABLE)
        except Exception as e:  # noqa: BLE001 - fail closed on any collaborator error
            logger.error(
                "Identity authority raised unexpectedly",
                connection_id=connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CredentialCheckResult(valid=False, reason=RejectionReason.AUTHORITY_UNREACHABLE)

    def _reject(self, connection_id: int, reason: str) -> VerificationOutcome:
        if not self._registry.mark_rejected(connection_id):
            return VerificationOutcome.DISCARDED
        logger.info("Player rejected", connection_id=connection_id, reason=str(reason))
        if self._event_bus is not None:
            self._event_bus.publish(PlayerRejected(connection_id=connection_id, reason=str(reason)))
        return VerificationOutcome.REJECTED
