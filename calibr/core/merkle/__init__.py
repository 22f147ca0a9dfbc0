"""
Merkle commitments for private attestations.

- Leaf encoding of typed claim fields
- Commutative Merkle tree, proof generation and verification
- Selective disclosure artifacts
"""

from calibr.core.merkle.leaf import (
    FieldType,
    ClaimField,
    MerkleLeaf,
    LeafEncoder,
    encode_value,
    hash_leaf,
)
from calibr.core.merkle.tree import (
    EMPTY_LEAF,
    MerkleTree,
    hash_pair,
    build_levels,
    compute_root,
    generate_proof,
)
from calibr.core.merkle.proof import compute_root_from_proof, verify_proof
from calibr.core.merkle.disclosure import (
    RevealedField,
    SelectiveDisclosureProof,
    MerkleTreeData,
    create_merkle_tree,
    generate_multi_proof,
    create_disclosure,
    verify_disclosure,
    verify_disclosure_fields,
)

__all__ = [
    # Leaves
    "FieldType",
    "ClaimField",
    "MerkleLeaf",
    "LeafEncoder",
    "encode_value",
    "hash_leaf",
    # Tree
    "EMPTY_LEAF",
    "MerkleTree",
    "hash_pair",
    "build_levels",
    "compute_root",
    "generate_proof",
    # Proofs
    "compute_root_from_proof",
    "verify_proof",
    # Disclosure
    "RevealedField",
    "SelectiveDisclosureProof",
    "MerkleTreeData",
    "create_merkle_tree",
    "generate_multi_proof",
    "create_disclosure",
    "verify_disclosure",
    "verify_disclosure_fields",
]
