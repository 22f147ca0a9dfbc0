"""
Attestation result types, one per creation mode, plus the typed failure.

All to_dict() outputs use camelCase keys and 0x-prefixed lowercase hex.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from calibr.core.merkle import MerkleLeaf, SelectiveDisclosureProof, create_disclosure
from calibr.crypto import bytes_to_hex


@dataclass
class OnChainAttestationResult:
    uid: str
    tx_hash: bytes
    explorer_url: str

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "txHash": bytes_to_hex(self.tx_hash),
            "explorerUrl": self.explorer_url,
        }


@dataclass
class OffChainAttestationResult:
    """Signed attestation that never touches the chain."""
    uid: str
    signature: bytes
    timestamp: int
    data: Dict[str, Any]

    def to_dict(self) -> dict:
        return {
            "uid": self.uid,
            "signature": bytes_to_hex(self.signature),
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }


@dataclass
class MerkleAttestationResult:
    """
    Private attestation: only the root is on-chain.

    Leaves and proofs stay with the holder for later selective disclosure.
    uid is None when the chain confirmation did not complete; the retained
    leaves and proofs are still valid against merkle_root.
    """
    uid: Optional[str]
    tx_hash: Optional[bytes]
    merkle_root: bytes
    leaves: List[MerkleLeaf]
    proofs: Dict[str, List[bytes]] = field(default_factory=dict)
    explorer_url: Optional[str] = None

    @property
    def confirmed(self) -> bool:
        return self.uid is not None

    def disclose(self, field_names: Sequence[str]) -> Optional[SelectiveDisclosureProof]:
        """Selective disclosure proof for the named fields (None if none match)."""
        return create_disclosure(self.merkle_root, self.leaves, self.proofs, field_names)

    def to_dict(self) -> dict:
        result = {
            "uid": self.uid,
            "merkleRoot": bytes_to_hex(self.merkle_root),
            "leaves": [leaf.to_dict() for leaf in self.leaves],
            "proofs": {name: [bytes_to_hex(h) for h in proof] for name, proof in self.proofs.items()},
        }
        if self.tx_hash is not None:
            result["txHash"] = bytes_to_hex(self.tx_hash)
        if self.explorer_url is not None:
            result["explorerUrl"] = self.explorer_url
        return result


@dataclass
class RevocationResult:
    uid: str
    tx_hash: bytes

    def to_dict(self) -> dict:
        return {"uid": self.uid, "txHash": bytes_to_hex(self.tx_hash)}


class FailureKind(str, Enum):
    UNAVAILABLE_DEPENDENCY = "unavailable_dependency"
    EXTERNAL_CALL = "external_call"


@dataclass
class AttestationFailure:
    """Typed failure returned instead of raising across the coordinator API."""
    kind: FailureKind
    message: str
    mode: str
    tx_hash: Optional[bytes] = None

    def to_dict(self) -> dict:
        result = {"error": self.kind.value, "message": self.message, "mode": self.mode}
        if self.tx_hash is not None:
            result["txHash"] = bytes_to_hex(self.tx_hash)
        return result


__all__ = [
    "OnChainAttestationResult",
    "OffChainAttestationResult",
    "MerkleAttestationResult",
    "RevocationResult",
    "FailureKind",
    "AttestationFailure",
]
