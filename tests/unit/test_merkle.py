"""
test_merkle.py - Unit tests for Merkle allowlist proofs

Tests:
- Leaf encoding and input validation
- Sorted-pair hashing
- Root and proof construction (even, odd and single-leaf trees)
- Verification against wrong leaves, wrong roots and malformed proofs
- Proof length bound
"""

import hashlib
import pytest
from lending import (
    hash_pair, claim_leaf, verify_merkle_proof, MAX_PROOF_LENGTH,
    build_merkle_root, build_merkle_proof, build_claim_allowlist,
)
from tests.helpers import ALLOWLIST_ENTRIES


class TestClaimLeaf:

    def test_leaf_preimage_layout(self):
        expected = hashlib.sha256(
            (5).to_bytes(2, "big") + b"alice" + (7).to_bytes(32, "big")
        ).digest()
        assert claim_leaf("alice", 7) == expected

    def test_leaf_binds_claimant_and_asset(self):
        assert claim_leaf("alice", 0) != claim_leaf("alice", 1)
        assert claim_leaf("alice", 0) != claim_leaf("bob", 0)

    def test_length_prefix_prevents_ambiguity(self):
        assert claim_leaf("ab", 0) != claim_leaf("a", 0)

    def test_empty_claimant_rejected(self):
        with pytest.raises(ValueError, match="empty"):
            claim_leaf("", 0)

    def test_negative_asset_rejected(self):
        with pytest.raises(ValueError, match="out of range"):
            claim_leaf("alice", -1)

    def test_oversized_asset_rejected(self):
        with pytest.raises(ValueError, match="out of range"):
            claim_leaf("alice", 2 ** 256)


class TestHashPair:

    def test_order_independent(self):
        a, b = b"\x01" * 32, b"\x02" * 32
        assert hash_pair(a, b) == hash_pair(b, a)
        assert hash_pair(a, b) == hashlib.sha256(a + b).digest()


class TestTreeConstruction:

    def _leaves(self, n):
        return [claim_leaf(f"user{i}", i) for i in range(n)]

    def test_single_leaf_root_is_leaf(self):
        leaves = self._leaves(1)
        assert build_merkle_root(leaves) == leaves[0]
        assert build_merkle_proof(leaves, 0) == []
        assert verify_merkle_proof(leaves[0], [], leaves[0])

    def test_two_leaves(self):
        leaves = self._leaves(2)
        assert build_merkle_root(leaves) == hash_pair(leaves[0], leaves[1])

    @pytest.mark.parametrize("n", [2, 3, 4, 5, 7, 8])
    def test_every_proof_verifies(self, n):
        leaves = self._leaves(n)
        root = build_merkle_root(leaves)
        for i, leaf in enumerate(leaves):
            assert verify_merkle_proof(root, build_merkle_proof(leaves, i), leaf)

    def test_odd_level_duplicates_last(self):
        leaves = self._leaves(3)
        expected = hash_pair(hash_pair(leaves[0], leaves[1]), hash_pair(leaves[2], leaves[2]))
        assert build_merkle_root(leaves) == expected

    def test_empty_tree_rejected(self):
        with pytest.raises(ValueError):
            build_merkle_root([])

    def test_proof_index_out_of_range(self):
        with pytest.raises(IndexError):
            build_merkle_proof(self._leaves(2), 2)


class TestVerification:

    @pytest.fixture
    def tree(self):
        leaves = [claim_leaf(c, i) for c, i in ALLOWLIST_ENTRIES]
        return leaves, build_merkle_root(leaves)

    def test_wrong_leaf_fails(self, tree):
        leaves, root = tree
        proof = build_merkle_proof(leaves, 0)
        assert not verify_merkle_proof(root, proof, claim_leaf("mallory", 0))

    def test_proof_for_other_leaf_fails(self, tree):
        leaves, root = tree
        assert not verify_merkle_proof(root, build_merkle_proof(leaves, 1), leaves[0])

    def test_wrong_root_fails(self, tree):
        leaves, _ = tree
        assert not verify_merkle_proof(b"\x00" * 32, build_merkle_proof(leaves, 0), leaves[0])

    def test_empty_proof_fails_for_multi_leaf_tree(self, tree):
        leaves, root = tree
        assert not verify_merkle_proof(root, [], leaves[0])

    def test_truncated_proof_fails(self, tree):
        leaves, root = tree
        assert not verify_merkle_proof(root, build_merkle_proof(leaves, 0)[:1], leaves[0])

    def test_malformed_inputs_return_false(self, tree):
        leaves, root = tree
        proof = build_merkle_proof(leaves, 0)
        assert not verify_merkle_proof(root[:31], proof, leaves[0])
        assert not verify_merkle_proof(root, proof, b"short")
        assert not verify_merkle_proof(root, [b"bad"] + proof[1:], leaves[0])
        assert not verify_merkle_proof(root, ["not bytes"], leaves[0])

    def test_proof_longer_than_bound_fails(self, tree):
        leaves, root = tree
        proof = build_merkle_proof(leaves, 0)
        assert verify_merkle_proof(root, proof, leaves[0], max_length=len(proof))
        assert not verify_merkle_proof(root, proof, leaves[0], max_length=len(proof) - 1)

    def test_oversized_proof_fails_without_hashing(self, tree, monkeypatch):
        leaves, root = tree
        calls = []
        monkeypatch.setattr("lending.merkle.hash_pair", lambda a, b: calls.append(1) or a)
        proof = [leaves[1]] * (MAX_PROOF_LENGTH + 1)
        assert not verify_merkle_proof(root, proof, leaves[0])
        assert calls == []


class TestClaimAllowlist:

    def test_proofs_verify_against_root(self):
        allowlist = build_claim_allowlist(ALLOWLIST_ENTRIES)
        for claimant, asset_id in ALLOWLIST_ENTRIES:
            assert verify_merkle_proof(
                allowlist.root, allowlist.proof_for(asset_id), claim_leaf(claimant, asset_id)
            )

    def test_depth_matches_proof_length(self):
        allowlist = build_claim_allowlist(ALLOWLIST_ENTRIES)
        assert allowlist.depth == 2
        assert all(len(allowlist.proof_for(a)) == allowlist.depth for _, a in ALLOWLIST_ENTRIES)

    def test_root_is_deterministic(self):
        assert build_claim_allowlist(ALLOWLIST_ENTRIES).root == build_claim_allowlist(ALLOWLIST_ENTRIES).root

    def test_duplicate_asset_ids_rejected(self):
        with pytest.raises(ValueError, match="only once"):
            build_claim_allowlist([("alice", 0), ("bob", 0)])

    def test_empty_allowlist_rejected(self):
        with pytest.raises(ValueError):
            build_claim_allowlist([])
