"""
Merkle proof verification.

Folds a leaf hash through its sibling path with the same commutative pairing
used to build the tree, and compares the result with a claimed root.
Verification is total: malformed input yields False, never an exception, so
batches of checks can run past individual bad proofs.
"""

from typing import Optional, Sequence

from calibr.core.merkle.tree import HASH_SIZE, hash_pair


def _is_hash(value) -> bool:
    return isinstance(value, (bytes, bytearray)) and len(value) == HASH_SIZE


def compute_root_from_proof(leaf_hash: bytes, proof: Sequence[bytes]) -> Optional[bytes]:
    """
    Recompute the root implied by a leaf and its proof.

    Returns:
        32-byte root, or None if any input is not a 32-byte hash
    """
    if not _is_hash(leaf_hash):
        return None

    current = bytes(leaf_hash)
    for sibling in proof:
        if not _is_hash(sibling):
            return None
        current = hash_pair(current, bytes(sibling))
    return current


def verify_proof(leaf_hash: bytes, proof: Sequence[bytes], claimed_root: bytes) -> bool:
    """
    Verify a Merkle proof.

    Args:
        leaf_hash: The leaf being proven
        proof: Sibling hashes, leaf level first
        claimed_root: Expected root

    Returns:
        True if the proof recomputes claimed_root
    """
    if not _is_hash(claimed_root):
        return False
    try:
        computed = compute_root_from_proof(leaf_hash, proof)
    except TypeError:
        # proof not iterable
        return False
    return computed is not None and computed == bytes(claimed_root)


__all__ = ["compute_root_from_proof", "verify_proof"]
