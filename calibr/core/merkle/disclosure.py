"""
Selective Disclosure - Reveal a subset of claim fields against a public root.

The holder of a private attestation keeps every leaf and proof client-side.
To convince a third party of some fields, it hands over a
SelectiveDisclosureProof:

    {
      "merkleRoot": "0x...",
      "revealedFields": [
        {"name": "probability", "type": "uint", "value": 7500, "proof": ["0x...", ...]},
        ...
      ]
    }

The artifact carries nothing about unrevealed fields beyond the sibling
hashes on each proof path. Every revealed field carries its explicit type
tag; the verifier never guesses a type from the shape of the value.

Verification recomputes each revealed leaf with the LeafEncoder and folds it
through its proof. The root inside the artifact is only self-consistent;
callers that know the on-chain root pass it as expected_root.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from calibr.core.errors import ValidationError
from calibr.core.merkle.leaf import ClaimField, LeafEncoder, MerkleLeaf, hash_leaf, json_value
from calibr.core.merkle.proof import verify_proof
from calibr.core.merkle.tree import MerkleTree
from calibr.crypto import bytes_to_hex, hex_to_bytes
from calibr.utils.logger import get_logger
from calibr.utils.validation import validate_hex_string

logger = get_logger("disclosure")


# =============================================================================
# Exchange Format
# =============================================================================


def _check_hash_hex(value: str, name: str) -> str:
    ok, err = validate_hex_string(value, name, expected_bytes=32)
    if not ok:
        raise ValueError(err)
    return value.lower()


class RevealedField(BaseModel):
    """One disclosed field with its Merkle path."""

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, description="Schema field name")
    type: str = Field(..., min_length=1, description="Type tag used when the leaf was built")
    value: Any = Field(..., description="Revealed value")
    proof: List[str] = Field(default_factory=list, description="Sibling hashes, leaf level first")

    @field_validator("proof")
    @classmethod
    def _proof_hashes(cls, v: List[str]) -> List[str]:
        return [_check_hash_hex(h, "proof entry") for h in v]

    def proof_bytes(self) -> List[bytes]:
        return [hex_to_bytes(h) for h in self.proof]


class SelectiveDisclosureProof(BaseModel):
    """
    Portable artifact exchanged between a claim holder and a verifier.

    Serializes with camelCase keys (merkleRoot, revealedFields).
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    merkle_root: str = Field(..., alias="merkleRoot")
    revealed_fields: List[RevealedField] = Field(..., alias="revealedFields")

    @field_validator("merkle_root")
    @classmethod
    def _root_hash(cls, v: str) -> str:
        return _check_hash_hex(v, "merkleRoot")

    @field_validator("revealed_fields")
    @classmethod
    def _unique_names(cls, v: List[RevealedField]) -> List[RevealedField]:
        names = [f.name for f in v]
        if len(names) != len(set(names)):
            raise ValueError("revealed field names must be unique")
        return v

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.revealed_fields]

    def get_field(self, name: str) -> Optional[RevealedField]:
        for f in self.revealed_fields:
            if f.name == name:
                return f
        return None

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")

    def to_json(self, indent: Optional[int] = None) -> str:
        return self.model_dump_json(by_alias=True, indent=indent)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SelectiveDisclosureProof":
        """
        Parse a third-party artifact.

        Raises:
            ValidationError: Artifact is malformed
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(f"malformed disclosure proof: {e.error_count()} error(s)") from e

    @classmethod
    def from_json(cls, text: Union[str, bytes]) -> "SelectiveDisclosureProof":
        try:
            return cls.model_validate_json(text)
        except PydanticValidationError as e:
            raise ValidationError(f"malformed disclosure proof: {e.error_count()} error(s)") from e


# =============================================================================
# Tree Data
# =============================================================================


@dataclass
class MerkleTreeData:
    """Root, hashed leaves and depth of a claim tree."""
    root: bytes
    leaves: List[MerkleLeaf]
    depth: int

    def leaf_hashes(self) -> List[bytes]:
        return [leaf.hash for leaf in self.leaves]

    def to_dict(self) -> dict:
        return {
            "root": bytes_to_hex(self.root),
            "leaves": [leaf.to_dict() for leaf in self.leaves],
            "depth": self.depth,
        }


def create_merkle_tree(
    fields: Sequence[ClaimField],
    encoder: Optional[LeafEncoder] = None,
) -> MerkleTreeData:
    """
    Hash a claim and build its tree.

    Raises:
        ValidationError: Empty or malformed field list
    """
    encoder = encoder or LeafEncoder()
    leaves = encoder.encode(fields)
    tree = MerkleTree([leaf.hash for leaf in leaves])
    return MerkleTreeData(root=tree.root, leaves=leaves, depth=tree.depth)


def generate_multi_proof(tree: MerkleTreeData, field_indices: Sequence[int]) -> SelectiveDisclosureProof:
    """
    Build a disclosure proof for the fields at the given indices.

    Raises:
        IndexError: Invalid field index
    """
    merkle = MerkleTree(tree.leaf_hashes())
    revealed = []
    for index in field_indices:
        if index < 0 or index >= len(tree.leaves):
            raise IndexError(f"Invalid field index: {index}")
        leaf = tree.leaves[index]
        revealed.append(_revealed(leaf, merkle.prove(index)))

    return SelectiveDisclosureProof(merkle_root=bytes_to_hex(tree.root), revealed_fields=revealed)


def create_disclosure(
    merkle_root: bytes,
    leaves: Sequence[MerkleLeaf],
    proofs: Mapping[str, Sequence[bytes]],
    field_names: Sequence[str],
) -> Optional[SelectiveDisclosureProof]:
    """
    Select fields from a retained attestation for disclosure.

    Unknown names are skipped. Returns None if nothing is left to reveal.
    """
    by_name = {leaf.name: leaf for leaf in leaves}
    revealed = []
    for name in field_names:
        leaf = by_name.get(name)
        if leaf is None:
            logger.warning(f"Skipping unknown field in disclosure: {name}")
            continue
        revealed.append(_revealed(leaf, proofs.get(name, [])))

    if not revealed:
        return None

    return SelectiveDisclosureProof(merkle_root=bytes_to_hex(merkle_root), revealed_fields=revealed)


def _revealed(leaf: MerkleLeaf, proof: Sequence[bytes]) -> RevealedField:
    return RevealedField(
        name=leaf.name,
        type=leaf.type,
        value=json_value(leaf.value),
        proof=[bytes_to_hex(h) for h in proof],
    )


# =============================================================================
# Verification
# =============================================================================


def recompute_leaf(revealed: RevealedField, strict: bool = False) -> Optional[bytes]:
    """Leaf hash implied by a revealed field, or None if it cannot be encoded."""
    try:
        return hash_leaf(revealed.name, revealed.type, revealed.value, strict=strict)
    except ValidationError as e:
        logger.debug(f"Revealed field {revealed.name!r} does not encode: {e}")
        return None


def _coerce(proof: Union[SelectiveDisclosureProof, Mapping[str, Any], str]) -> Optional[SelectiveDisclosureProof]:
    if isinstance(proof, SelectiveDisclosureProof):
        return proof
    try:
        if isinstance(proof, (str, bytes)):
            return SelectiveDisclosureProof.from_json(proof)
        return SelectiveDisclosureProof.from_dict(proof)
    except ValidationError as e:
        logger.info(f"Rejecting disclosure proof: {e}")
        return None


def verify_disclosure_fields(
    proof: Union[SelectiveDisclosureProof, Mapping[str, Any], str],
    expected_root: Optional[Union[bytes, str]] = None,
    strict: bool = False,
) -> Dict[str, bool]:
    """
    Check every revealed field independently.

    Args:
        proof: Disclosure artifact (model, dict or JSON text)
        expected_root: Root published on-chain; defaults to the artifact's own root
        strict: Reject fallback-encoded type tags

    Returns:
        field name -> verified; empty if the artifact is malformed
    """
    parsed = _coerce(proof)
    if parsed is None:
        return {}

    root = hex_to_bytes(parsed.merkle_root)
    if expected_root is not None:
        try:
            expected = hex_to_bytes(expected_root) if isinstance(expected_root, str) else bytes(expected_root)
        except (TypeError, ValueError):
            expected = None
        if expected != root:
            return {f.name: False for f in parsed.revealed_fields}

    results = {}
    for revealed in parsed.revealed_fields:
        leaf_hash = recompute_leaf(revealed, strict=strict)
        results[revealed.name] = leaf_hash is not None and verify_proof(
            leaf_hash, revealed.proof_bytes(), root
        )
    return results


def verify_disclosure(
    proof: Union[SelectiveDisclosureProof, Mapping[str, Any], str],
    expected_root: Optional[Union[bytes, str]] = None,
    strict: bool = False,
) -> bool:
    """
    Verify a selective disclosure proof.

    True only if at least one field is revealed and every revealed field
    verifies against the root. Never raises.
    """
    results = verify_disclosure_fields(proof, expected_root=expected_root, strict=strict)
    return bool(results) and all(results.values())


__all__ = [
    "RevealedField",
    "SelectiveDisclosureProof",
    "MerkleTreeData",
    "create_merkle_tree",
    "generate_multi_proof",
    "create_disclosure",
    "recompute_leaf",
    "verify_disclosure_fields",
    "verify_disclosure",
]
