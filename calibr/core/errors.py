"""
Error taxonomy for attestation creation and verification.

- ValidationError: malformed claim input, rejected before hashing or any
  external call.
- UnavailableDependencyError: a collaborator is missing (no signer, no chain
  client, schema not deployed on the target network).
- ExternalCallFailure: a collaborator call failed (RPC error, rejected
  signature, timeout or cancellation while awaiting).

The coordinator converts the last two into AttestationFailure results; they
never cross its public API. Proof mismatches are plain False.
"""

from typing import Optional


class AttestationError(Exception):
    """Base class for Calibr attestation errors."""


class ValidationError(AttestationError, ValueError):
    """Claim input is empty, malformed or uses an unsupported type."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class UnavailableDependencyError(AttestationError):
    """A required collaborator or deployment is not available."""

    def __init__(self, message: str, dependency: str = ""):
        super().__init__(message)
        self.dependency = dependency


class ExternalCallFailure(AttestationError):
    """A call to the chain client or the signer failed."""

    def __init__(self, message: str, operation: str = "", tx_hash: Optional[bytes] = None):
        super().__init__(message)
        self.operation = operation
        self.tx_hash = tx_hash
