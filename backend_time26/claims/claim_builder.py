"""
Claim proofs for accumulated off-chain balances.

The tree covers every user with a positive balance at build time and is cached for
MERKLE_CACHE_TTL_SEC (default 300s). A proof is only usable against the root currently
stored on-chain. When balances moved since the last publish, the proof is served from the
snapshot committed with that root; without one the response reports root_mismatch.
"""

from __future__ import annotations

import json
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from backend_time26.claims.merkle import MerkleRewardEntry, RewardsMerkleTree
from backend_time26.config import get_settings
from backend_time26.database.connection import session_scope
from backend_time26.database.repositories import list_positive_balances, normalize_wallet
from backend_time26.database.schema import RewardsMerkleSnapshot
from backend_time26.oracle.chain import RewardChain
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

REASON_NO_BALANCE = "no_balance"
REASON_CHAIN_UNAVAILABLE = "chain_unavailable"
REASON_ROOT_MISMATCH = "root_mismatch"
REASON_NOTHING_TO_CLAIM = "nothing_to_claim"


def load_reward_entries(session_factory: sessionmaker | None = None) -> list[MerkleRewardEntry]:
    with session_scope(session_factory) as session:
        return [MerkleRewardEntry(wallet, amount) for wallet, amount in list_positive_balances(session)]


def load_snapshot_entries(
    merkle_root: str, session_factory: sessionmaker | None = None
) -> list[MerkleRewardEntry] | None:
    """Entries committed with merkle_root by the root publisher, or None when never published."""
    with session_scope(session_factory) as session:
        row = session.execute(
            select(RewardsMerkleSnapshot)
            .where(RewardsMerkleSnapshot.merkle_root == merkle_root.lower())
            .order_by(RewardsMerkleSnapshot.id.desc())
            .limit(1)
        ).scalar_one_or_none()
        if row is None:
            return None
        return [MerkleRewardEntry(e["wallet"], int(e["amount"])) for e in json.loads(row.entries_json)]


@dataclass(frozen=True)
class CachedTree:
    tree: RewardsMerkleTree
    built_at: float


class ClaimTreeCache:
    """Holds the current tree; rebuilds through `loader` once older than ttl_sec."""

    def __init__(
        self,
        loader: Callable[[], list[MerkleRewardEntry]],
        *,
        ttl_sec: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._loader = loader
        self._ttl = ttl_sec if ttl_sec is not None else get_settings().merkle_cache_ttl_sec
        self._clock = clock
        self._lock = threading.Lock()
        self._cached: CachedTree | None = None

    def get(self) -> RewardsMerkleTree:
        now = self._clock()
        with self._lock:
            if self._cached is None or now - self._cached.built_at >= self._ttl:
                tree = RewardsMerkleTree(self._loader())
                self._cached = CachedTree(tree=tree, built_at=now)
                logger.info("claim_tree_built", entries=len(tree), merkle_root=tree.root_hex)
            return self._cached.tree

    def invalidate(self) -> None:
        with self._lock:
            self._cached = None


@dataclass
class ClaimProof:
    wallet_address: str
    claimable: bool
    cumulative_amount: int = 0
    already_claimed: int = 0
    claimable_amount: int = 0
    proof: list[str] = field(default_factory=list)
    merkle_root: str | None = None
    on_chain_root: str | None = None
    root_matches: bool = False
    contract_address: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "claimable": self.claimable,
            "cumulativeAmount": str(self.cumulative_amount),
            "alreadyClaimed": str(self.already_claimed),
            "claimableAmount": str(self.claimable_amount),
            "proof": list(self.proof),
            "merkleRoot": self.merkle_root,
            "onChainRoot": self.on_chain_root,
            "rootMatches": self.root_matches,
            "contractAddress": self.contract_address,
        }
        if self.reason:
            out["reason"] = self.reason
        return out


class MerkleClaimBuilder:
    """
    Proofs against the live tree, or against the published snapshot when the live tree
    has moved past the root committed on-chain.
    """

    def __init__(
        self,
        chain: RewardChain,
        cache: ClaimTreeCache,
        session_factory: sessionmaker | None = None,
    ) -> None:
        self._chain = chain
        self._cache = cache
        self._factory = session_factory
        self._snapshot_lock = threading.Lock()
        # Snapshots never change once written, so the last one is kept by root
        self._snapshot: RewardsMerkleTree | None = None

    @property
    def cache(self) -> ClaimTreeCache:
        return self._cache

    def invalidate(self) -> None:
        self._cache.invalidate()

    def _snapshot_tree(self, merkle_root: str) -> RewardsMerkleTree | None:
        root = (merkle_root or "").lower()
        with self._snapshot_lock:
            if self._snapshot is not None and self._snapshot.root_hex == root:
                return self._snapshot
        entries = load_snapshot_entries(root, self._factory)
        if entries is None:
            return None
        tree = RewardsMerkleTree(entries)
        if tree.root_hex != root:
            logger.error("claim_snapshot_root_mismatch", snapshot_root=root, rebuilt_root=tree.root_hex)
            return None
        with self._snapshot_lock:
            self._snapshot = tree
        return tree

    def get_claim_proof(self, wallet_address: str) -> ClaimProof:
        wallet = normalize_wallet(wallet_address)
        tree = self._cache.get()
        contract = self._chain.proof_recorder_address
        entry = tree.get(wallet)

        try:
            on_chain_root = self._chain.rewards_merkle_root()
            claimed = self._chain.total_claimed(wallet)
        except Exception as e:
            logger.warning("claim_proof_chain_unavailable", wallet=wallet, error=str(e))
            if entry is None:
                return _no_balance(wallet, tree, contract)
            return ClaimProof(
                wallet_address=wallet,
                claimable=False,
                cumulative_amount=entry.cumulative_amount,
                proof=tree.proof(wallet),
                merkle_root=tree.root_hex,
                contract_address=contract,
                reason=REASON_CHAIN_UNAVAILABLE,
            )

        if tree.root_hex != (on_chain_root or "").lower():
            committed = self._snapshot_tree(on_chain_root)
            committed_entry = committed.get(wallet) if committed is not None else None
            if committed_entry is not None:
                logger.info("claim_proof_from_snapshot", wallet=wallet, merkle_root=committed.root_hex)
                tree, entry = committed, committed_entry
            elif entry is not None:
                logger.info("claim_proof_root_mismatch", wallet=wallet, merkle_root=tree.root_hex, on_chain_root=on_chain_root)
        if entry is None:
            return _no_balance(wallet, tree, contract)

        claimable_amount = max(entry.cumulative_amount - claimed, 0)
        root_matches = tree.root_hex == (on_chain_root or "").lower()
        reason = None
        if not root_matches:
            reason = REASON_ROOT_MISMATCH
        elif claimable_amount == 0:
            reason = REASON_NOTHING_TO_CLAIM
        return ClaimProof(
            wallet_address=wallet,
            claimable=root_matches and claimable_amount > 0,
            cumulative_amount=entry.cumulative_amount,
            already_claimed=claimed,
            claimable_amount=claimable_amount,
            proof=tree.proof(wallet),
            merkle_root=tree.root_hex,
            on_chain_root=on_chain_root,
            root_matches=root_matches,
            contract_address=contract,
            reason=reason,
        )


def _no_balance(wallet: str, tree: RewardsMerkleTree, contract: str) -> ClaimProof:
    return ClaimProof(
        wallet_address=wallet,
        claimable=False,
        merkle_root=tree.root_hex if len(tree) else None,
        contract_address=contract,
        reason=REASON_NO_BALANCE,
    )
