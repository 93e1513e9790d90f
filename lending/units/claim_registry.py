"""
claim_registry.py - One-Time Asset Claims Against a Merkle Allowlist

The registry unit stores the Merkle root and the longest proof it accepts,
both fixed at creation, and the set of asset ids already claimed. A claim
is accepted once per asset id, ever:

    1. asset id already claimed  -> AlreadyClaimed (proof is not even checked)
    2. proof is too long, or does not authenticate
       claim_leaf(claimant, asset_id) -> InvalidProof
    3. otherwise: mark claimed and issue the asset to the claimant

Step 3 is one PendingTransaction holding the claimed-flag update, the asset
unit creation and the issuance move, so the flag can never lag the mint.
"""

from __future__ import annotations
from typing import List, Optional, Sequence

from ..core import (
    LedgerView, PendingTransaction, Unit, UnitStateChange, TransactionOrigin, OriginType,
    UNIT_TYPE_CLAIM_REGISTRY,
    AlreadyClaimed, InvalidProof,
    _freeze_state,
)
from ..merkle import claim_leaf, verify_merkle_proof, HASH_SIZE, MAX_PROOF_LENGTH
from .asset import compute_issue_asset


def create_claim_registry(symbol: str, merkle_root: bytes,
                          max_proof_length: int = MAX_PROOF_LENGTH) -> Unit:
    """
    Create the claim registry unit with an immutable Merkle root.

    max_proof_length is normally the allowlist's depth; the default only
    caps it at the deepest tree a uint256 asset id space can need.

    Raises:
        ValueError: If merkle_root is not 32 bytes, or max_proof_length is
            not an integer in [0, MAX_PROOF_LENGTH].
    """
    if not isinstance(merkle_root, (bytes, bytearray)) or len(merkle_root) != HASH_SIZE:
        raise ValueError("merkle_root must be 32 bytes")
    if (isinstance(max_proof_length, bool) or not isinstance(max_proof_length, int)
            or not 0 <= max_proof_length <= MAX_PROOF_LENGTH):
        raise ValueError(f"max_proof_length must be in [0, {MAX_PROOF_LENGTH}], got {max_proof_length!r}")
    return Unit(
        symbol=symbol,
        name="Claim Registry",
        unit_type=UNIT_TYPE_CLAIM_REGISTRY,
        _frozen_state=_freeze_state({
            'merkle_root': bytes(merkle_root),
            'max_proof_length': max_proof_length,
            'claimed': [],
        }),
    )


def is_claimed(view: LedgerView, registry_symbol: str, asset_id: int) -> bool:
    return asset_id in view.get_unit_state(registry_symbol)['claimed']


def verify_claim(view: LedgerView, registry_symbol: str, claimant: str, asset_id: int,
                 proof: Sequence[bytes]) -> bool:
    """True if proof authenticates (claimant, asset_id) against the stored root."""
    try:
        leaf = claim_leaf(claimant, asset_id)
    except ValueError:
        return False
    state = view.get_unit_state(registry_symbol)
    return verify_merkle_proof(state['merkle_root'], list(proof), leaf, state['max_proof_length'])


def compute_claim(
    view: LedgerView,
    registry_symbol: str,
    claimant: str,
    asset_id: int,
    proof: Sequence[bytes],
    origin: Optional[TransactionOrigin] = None,
) -> PendingTransaction:
    """
    Claim an allowlisted asset.

    Raises:
        AlreadyClaimed: If asset_id was claimed before.
        InvalidProof: If the proof is longer than the registry allows or
            does not match the committed root.
        AssetAlreadyIssued: If the asset id exists through another channel.
    """
    state = view.get_unit_state(registry_symbol)
    if asset_id in state['claimed']:
        raise AlreadyClaimed(f"asset {asset_id} already claimed")
    if not verify_claim(view, registry_symbol, claimant, asset_id, proof):
        raise InvalidProof(f"proof does not authenticate {claimant} for asset {asset_id}")

    if origin is None:
        origin = TransactionOrigin(OriginType.USER_ACTION, claimant, registry_symbol, "CLAIM")
    issuance = compute_issue_asset(view, claimant, asset_id, origin=origin)

    claimed: List[int] = sorted(state['claimed'] + [asset_id])
    new_state = {**state, 'claimed': claimed}
    change = UnitStateChange(unit=registry_symbol, old_state=state, new_state=new_state)

    return PendingTransaction(
        moves=issuance.moves,
        state_changes=(change,),
        origin=origin,
        timestamp=issuance.timestamp,
        units_to_create=issuance.units_to_create,
    )
