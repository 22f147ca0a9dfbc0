"""
Unit tests for proof verification.

Verification never raises; every malformed input is simply False.
"""

from calibr.core.merkle.proof import compute_root_from_proof, verify_proof
from calibr.core.merkle.tree import MerkleTree
from calibr.crypto import keccak256


def build(n=6):
    leaves = [keccak256(bytes([i])) for i in range(n)]
    return leaves, MerkleTree(leaves)


class TestVerifyProof:
    def test_valid_proof(self):
        leaves, tree = build()
        assert verify_proof(leaves[4], tree.prove(4), tree.root)

    def test_wrong_leaf(self):
        leaves, tree = build()
        assert not verify_proof(leaves[3], tree.prove(4), tree.root)

    def test_tampered_sibling(self):
        leaves, tree = build()
        proof = tree.prove(0)
        proof[1] = keccak256(b"tampered")
        assert not verify_proof(leaves[0], proof, tree.root)

    def test_wrong_root(self):
        leaves, tree = build()
        assert not verify_proof(leaves[0], tree.prove(0), keccak256(b"other"))

    def test_single_leaf_empty_proof(self):
        leaf = keccak256(b"x")
        assert verify_proof(leaf, [], leaf)

    def test_truncated_proof(self):
        leaves, tree = build()
        assert not verify_proof(leaves[0], tree.prove(0)[:-1], tree.root)


class TestMalformedInput:
    def test_short_leaf(self):
        _, tree = build()
        assert not verify_proof(b"\x01" * 31, tree.prove(0), tree.root)

    def test_short_sibling(self):
        leaves, tree = build()
        assert not verify_proof(leaves[0], [b"\x01"], tree.root)

    def test_non_bytes_root(self):
        leaves, tree = build()
        assert not verify_proof(leaves[0], tree.prove(0), "0x" + tree.root.hex())

    def test_non_iterable_proof(self):
        leaves, tree = build()
        assert not verify_proof(leaves[0], None, tree.root)

    def test_compute_root_from_proof_none_on_bad_input(self):
        assert compute_root_from_proof(b"short", []) is None
        assert compute_root_from_proof(keccak256(b"a"), ["not bytes"]) is None
