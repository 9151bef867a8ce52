"""Join-credential verification against an external identity authority."""

from .credential_verifier import CredentialVerifier, JoinCredential, RejectionReason, VerificationOutcome
from .identity_authority import CredentialCheckResult, HttpIdentityAuthority, IdentityAuthority

__all__ = [
    "CredentialCheckResult",
    "CredentialVerifier",
    "HttpIdentityAuthority",
    "IdentityAuthority",
    "JoinCredential",
    "RejectionReason",
    "VerificationOutcome",
]
