"""
Claims: rewards Merkle tree, cached claim proofs, and on-chain root publishing.
"""

from backend_time26.claims.claim_builder import (
    ClaimProof,
    ClaimTreeCache,
    MerkleClaimBuilder,
    load_reward_entries,
    load_snapshot_entries,
)
from backend_time26.claims.merkle import MerkleRewardEntry, RewardsMerkleTree, hash_leaf, verify_proof
from backend_time26.claims.root_publisher import RootPublisher, RootPublishResult

__all__ = [
    "ClaimProof",
    "ClaimTreeCache",
    "MerkleClaimBuilder",
    "MerkleRewardEntry",
    "RewardsMerkleTree",
    "RootPublishResult",
    "RootPublisher",
    "hash_leaf",
    "load_reward_entries",
    "load_snapshot_entries",
    "verify_proof",
]
