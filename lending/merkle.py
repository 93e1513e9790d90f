"""
merkle.py - Merkle membership proofs for the claim allowlist

Commitment rules:
1. Leaf: sha256(len(claimant) as 2 bytes ‖ claimant utf-8 ‖ asset_id as 32 bytes),
   all big-endian
2. Parent: sha256(min(a, b) ‖ max(a, b)) (sorted pair, so proofs carry no
   left/right flags)
3. Odd level: the last node is paired with itself
4. Single leaf: root = leaf, proof = []

verify_merkle_proof() is the only function the ledger needs at runtime. The
builders exist to compute the genesis root and hand out proofs.
"""

from __future__ import annotations
from dataclasses import dataclass
import hashlib
import hmac
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

HASH_SIZE = 32

# Asset ids fit in 256 bits, so no allowlist needs a deeper tree.
MAX_PROOF_LENGTH = 256


def hash_pair(a: bytes, b: bytes) -> bytes:
    """Hash two nodes in canonical (sorted) order."""
    if a <= b:
        return hashlib.sha256(a + b).digest()
    return hashlib.sha256(b + a).digest()


def claim_leaf(claimant: str, asset_id: int) -> bytes:
    """
    Deterministic leaf for a (claimant, asset_id) allowlist entry.

    Raises:
        ValueError: If asset_id is negative or does not fit in 32 bytes,
                    or the claimant is empty or too long to length-prefix.
    """
    encoded = claimant.encode("utf-8")
    if not encoded:
        raise ValueError("claimant cannot be empty")
    if len(encoded) > 0xFFFF:
        raise ValueError("claimant too long")
    if asset_id < 0 or asset_id >= 2 ** 256:
        raise ValueError(f"asset_id out of range: {asset_id}")
    preimage = len(encoded).to_bytes(2, "big") + encoded + asset_id.to_bytes(HASH_SIZE, "big")
    return hashlib.sha256(preimage).digest()


def verify_merkle_proof(root: bytes, proof: Sequence[bytes], leaf: bytes,
                        max_length: int = MAX_PROOF_LENGTH) -> bool:
    """
    Check that leaf is committed to by root.

    Folds the proof left to right with hash_pair() and compares the result
    with root in constant time. Never raises: a malformed root, leaf or proof
    element simply fails verification, as does a proof longer than
    max_length (checked before any hashing).

    Args:
        root: 32-byte Merkle root
        proof: Sibling hashes from the leaf level upward
        leaf: 32-byte leaf hash
        max_length: Longest proof accepted

    Returns:
        True if the folded proof equals root.
    """
    if len(proof) > max_length:
        return False
    if not _is_hash(root) or not _is_hash(leaf):
        return False
    current = leaf
    for sibling in proof:
        if not _is_hash(sibling):
            return False
        current = hash_pair(current, sibling)
    return hmac.compare_digest(current, root)


def _is_hash(value) -> bool:
    return isinstance(value, (bytes, bytearray)) and len(value) == HASH_SIZE


def _next_level(level: List[bytes]) -> List[bytes]:
    if len(level) % 2 == 1:
        level = level + [level[-1]]
    return [hash_pair(level[i], level[i + 1]) for i in range(0, len(level), 2)]


def build_merkle_root(leaves: Sequence[bytes]) -> bytes:
    """
    Compute the root of a tree over leaves (in the given order).

    Raises:
        ValueError: If leaves is empty.
    """
    if not leaves:
        raise ValueError("cannot build a Merkle root from no leaves")
    level = list(leaves)
    while len(level) > 1:
        level = _next_level(level)
    return level[0]


def build_merkle_proof(leaves: Sequence[bytes], index: int) -> List[bytes]:
    """
    Collect the sibling path for the leaf at index.

    Raises:
        IndexError: If index is out of range.
    """
    if index < 0 or index >= len(leaves):
        raise IndexError(f"leaf index {index} out of range for {len(leaves)} leaves")
    proof = []
    level = list(leaves)
    while len(level) > 1:
        if len(level) % 2 == 1:
            level = level + [level[-1]]
        sibling = index + 1 if index % 2 == 0 else index - 1
        proof.append(level[sibling])
        level = _next_level(level)
        index //= 2
    return proof


@dataclass(frozen=True, slots=True)
class ClaimAllowlist:
    """
    Genesis allowlist: the committed root plus each entry's proof.

    Attributes:
        root: Merkle root committed at initialization
        entries: (claimant, asset_id) pairs in leaf order
        proofs: asset_id -> proof for that asset's entry
    """
    root: bytes
    entries: Tuple[Tuple[str, int], ...]
    proofs: Mapping[int, Tuple[bytes, ...]]

    def proof_for(self, asset_id: int) -> List[bytes]:
        return list(self.proofs[asset_id])

    @property
    def depth(self) -> int:
        """Proof length shared by every entry (padding keeps the tree balanced)."""
        return max(len(p) for p in self.proofs.values())


def build_claim_allowlist(entries: Iterable[Tuple[str, int]]) -> ClaimAllowlist:
    """
    Build the root and proofs for a fixed set of (claimant, asset_id) entries.

    Raises:
        ValueError: If entries is empty or an asset id appears twice.

    Example:
        allowlist = build_claim_allowlist([("alice", 0), ("bob", 1)])
        protocol.claim("alice", 0, allowlist.proof_for(0))
    """
    entries = tuple(entries)
    asset_ids = [asset_id for _, asset_id in entries]
    if len(set(asset_ids)) != len(asset_ids):
        raise ValueError("each asset id may appear in the allowlist only once")
    leaves = [claim_leaf(claimant, asset_id) for claimant, asset_id in entries]
    root = build_merkle_root(leaves)
    proofs: Dict[int, Tuple[bytes, ...]] = {
        asset_id: tuple(build_merkle_proof(leaves, i))
        for i, (_, asset_id) in enumerate(entries)
    }
    return ClaimAllowlist(root=root, entries=entries, proofs=proofs)
