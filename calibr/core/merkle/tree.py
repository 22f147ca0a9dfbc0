"""
Commutative Merkle Tree for claim commitments.

Conceptual Background:
---------------------
A claim with n fields is committed to by a single 32-byte root. Any one field
can later be proven against that root with log2(n) sibling hashes, without
revealing the other fields.

Construction:
- 1 leaf: the root is the leaf hash itself, the proof is empty.
- n > 1: pad with zero hashes to the next power of two, then repeatedly
  replace each adjacent pair (a, b) with keccak256(min(a, b) || max(a, b)).

Sorting each pair before hashing makes node hashing commutative, so proofs
are plain sibling lists with no left/right flags, and verification never
needs the leaf index.

Properties:
----------
- Build: O(n) hashes, levels kept for proof extraction
- Prove: O(log n) from cached levels
- Verify: O(log n), see calibr.core.merkle.proof
"""

from typing import Dict, List, Sequence

from calibr.core.errors import ValidationError
from calibr.crypto import ZERO_HASH, keccak256
from calibr.utils.logger import get_logger, short_hex

logger = get_logger("merkle")


# =============================================================================
# Constants
# =============================================================================

# Filler for non-power-of-two leaf counts
EMPTY_LEAF = ZERO_HASH

HASH_SIZE = 32


# =============================================================================
# Primitives
# =============================================================================


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes together, order-independent."""
    if a <= b:
        return keccak256(a + b)
    return keccak256(b + a)


def _check_leaf_hashes(leaf_hashes: Sequence[bytes]) -> List[bytes]:
    if not leaf_hashes:
        raise ValidationError("Cannot build a Merkle tree with no leaves")

    hashes = []
    for i, h in enumerate(leaf_hashes):
        if not isinstance(h, (bytes, bytearray)) or len(h) != HASH_SIZE:
            raise ValidationError(f"Leaf {i} must be a {HASH_SIZE}-byte hash")
        if h == EMPTY_LEAF:
            # Would be indistinguishable from padding
            raise ValidationError(f"Leaf {i} equals the padding hash")
        hashes.append(bytes(h))
    return hashes


def pad_leaves(leaf_hashes: Sequence[bytes]) -> List[bytes]:
    """Pad to the next power of two with EMPTY_LEAF. A single leaf is not padded."""
    n = len(leaf_hashes)
    next_pow2 = 1 << (n - 1).bit_length() if n > 1 else 1
    return list(leaf_hashes) + [EMPTY_LEAF] * (next_pow2 - n)


def _next_level(layer: List[bytes]) -> List[bytes]:
    return [hash_pair(layer[i], layer[i + 1]) for i in range(0, len(layer), 2)]


def build_levels(leaf_hashes: Sequence[bytes]) -> List[List[bytes]]:
    """
    Build every level of the tree, leaves first, root level last.

    Args:
        leaf_hashes: Ordered 32-byte leaf hashes (at least one)

    Returns:
        levels[0] is the padded leaf level, levels[-1] == [root]

    Raises:
        ValidationError: Empty input or malformed leaf hash
    """
    layer = pad_leaves(_check_leaf_hashes(leaf_hashes))
    levels = [layer]
    while len(layer) > 1:
        layer = _next_level(layer)
        levels.append(layer)
    return levels


def compute_root(leaf_hashes: Sequence[bytes]) -> bytes:
    """
    Compute the Merkle root of an ordered leaf-hash list.

    Deterministic: identical inputs always give the identical root.
    """
    layer = pad_leaves(_check_leaf_hashes(leaf_hashes))
    while len(layer) > 1:
        layer = _next_level(layer)
    return layer[0]


def generate_proof(leaf_hashes: Sequence[bytes], index: int) -> List[bytes]:
    """
    Generate the sibling path for one leaf without building a MerkleTree.

    Args:
        leaf_hashes: Ordered leaf hashes (padding is applied if missing)
        index: Leaf index to prove

    Returns:
        Sibling hashes from leaf level up to (not including) the root

    Raises:
        IndexError: index outside the real leaves
    """
    hashes = list(leaf_hashes)
    if not hashes:
        raise ValidationError("Cannot build a Merkle tree with no leaves")

    # Accept an already padded list; real leaves are never EMPTY_LEAF
    real_count = len(hashes)
    while real_count > 1 and hashes[real_count - 1] == EMPTY_LEAF:
        real_count -= 1
    if index < 0 or index >= real_count:
        raise IndexError(f"Leaf index {index} out of range")

    layer = pad_leaves(_check_leaf_hashes(hashes[:real_count]))
    proof = []
    idx = index
    while len(layer) > 1:
        proof.append(layer[idx ^ 1])
        layer = _next_level(layer)
        idx >>= 1
    return proof


# =============================================================================
# Merkle Tree
# =============================================================================


class MerkleTree:
    """
    Immutable commutative Merkle tree over a fixed leaf list.

    Levels are computed once at construction and reused by every prove()
    call, so proofs for all fields of a claim cost a single build.

    Attributes:
        leaves: Real (unpadded) leaf hashes
        levels: All levels, padded leaf level first
    """

    def __init__(self, leaf_hashes: Sequence[bytes]):
        self.levels: List[List[bytes]] = build_levels(leaf_hashes)
        self.leaves: List[bytes] = list(self.levels[0][: len(leaf_hashes)])
        logger.debug(
            f"Built Merkle tree: leaves={len(self.leaves)}, depth={self.depth}, "
            f"root={short_hex(self.root)}"
        )

    @property
    def root(self) -> bytes:
        return self.levels[-1][0]

    @property
    def depth(self) -> int:
        """Number of hashing levels (proof length)."""
        return len(self.levels) - 1

    def prove(self, leaf_index: int) -> List[bytes]:
        """
        Generate Merkle proof for a leaf.

        Args:
            leaf_index: Index of the leaf to prove

        Returns:
            Ordered sibling hashes, leaf level first
        """
        if leaf_index < 0 or leaf_index >= len(self.leaves):
            raise IndexError(f"Leaf index {leaf_index} out of range")

        proof = []
        idx = leaf_index
        for level in self.levels[:-1]:
            proof.append(level[idx ^ 1])
            idx >>= 1
        return proof

    def proofs(self) -> List[List[bytes]]:
        """Proofs for every real leaf, in leaf order."""
        return [self.prove(i) for i in range(len(self.leaves))]

    def proofs_by_name(self, names: Sequence[str]) -> Dict[str, List[bytes]]:
        if len(names) != len(self.leaves):
            raise ValueError("Need exactly one name per leaf")
        return {name: self.prove(i) for i, name in enumerate(names)}

    def __len__(self) -> int:
        return len(self.leaves)

    def __contains__(self, leaf: bytes) -> bool:
        return leaf in self.leaves

    def get_leaf(self, index: int) -> bytes:
        return self.leaves[index]


__all__ = [
    "EMPTY_LEAF",
    "hash_pair",
    "pad_leaves",
    "build_levels",
    "compute_root",
    "generate_proof",
    "MerkleTree",
]
