"""
Identity authority interface.

The authority maps a join credential to a unique player identity or reports
it invalid. netgate only consumes it; issuing credentials is somebody else's
job.
"""

from dataclasses import dataclass, field
from typing import Any, Protocol

import httpx

from ..exceptions import ErrorContext, IdentityAuthorityUnavailableError
from ..structured_logging.enhanced_logging_config import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CredentialCheckResult:
    """Answer from the identity authority."""

    valid: bool
    identity: dict[str, Any] = field(default_factory=dict)
    reason: str | None = None


class IdentityAuthority(Protocol):
    """Anything that can check a join credential."""

    async def check_credential(self, token: str) -> CredentialCheckResult:
        """
        Check one credential.

        Raises:
            IdentityAuthorityUnavailableError: If the authority cannot answer
        """
        ...


class HttpIdentityAuthority:
    """
    Identity authority reached over HTTP.

    POSTs {"token": ...} to the configured URL and expects
    {"valid": bool, "identity": {"name": str, ...}, "reason": str | null}.
    The request timeout belongs to this collaborator, not to the verifier.
    """

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def check_credential(self, token: str) -> CredentialCheckResult:
        context = ErrorContext(operation="check_credential", metadata={"url": self.url})
        try:
            response = await self._client.post(self.url, json={"token": token})
        except httpx.HTTPError as e:
            raise IdentityAuthorityUnavailableError(
                "Identity authority request failed", context, details={"error": str(e)}
            ) from e

        if response.status_code >= 500:
            raise IdentityAuthorityUnavailableError(
                "Identity authority returned a server error", context, details={"status_code": response.status_code}
            )
        if response.status_code >= 400:
            logger.info("Identity authority refused credential", status_code=response.status_code)
            return CredentialCheckResult(valid=False, reason=f"http_{response.status_code}")

        try:
            body = response.json()
        except ValueError as e:
            raise IdentityAuthorityUnavailableError("Identity authority returned invalid JSON", context) from e
        if not isinstance(body, dict):
            raise IdentityAuthorityUnavailableError("Identity authority returned a non-object body", context)

        identity = body.get("identity")
        return CredentialCheckResult(
            valid=bool(body.get("valid")),
            identity=identity if isinstance(identity, dict) else {},
            reason=body.get("reason"),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
