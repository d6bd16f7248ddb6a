"""
Publish the current rewards Merkle root to the ProofRecorder.

Runs after settlement (cron). When the freshly built root differs from the on-chain
root it submits setRewardsMerkleRoot and stores the committed entries so any later
proof can be served from the snapshot while balances move on.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import sessionmaker

from backend_time26.claims.claim_builder import ClaimTreeCache
from backend_time26.database.connection import session_scope
from backend_time26.database.schema import RewardsMerkleSnapshot
from backend_time26.oracle.chain import RewardChain
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RootPublishResult:
    updated: bool
    merkle_root: str
    on_chain_root: str | None
    tx_hash: str | None
    entry_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "updated": self.updated,
            "merkleRoot": self.merkle_root,
            "onChainRoot": self.on_chain_root,
            "txHash": self.tx_hash,
            "entryCount": self.entry_count,
        }


class RootPublisher:
    def __init__(
        self,
        chain: RewardChain,
        cache: ClaimTreeCache,
        session_factory: sessionmaker | None = None,
    ) -> None:
        self._chain = chain
        self._cache = cache
        self._factory = session_factory

    def publish(self) -> RootPublishResult:
        """Rebuild from current balances and push the root if it changed. ChainError propagates."""
        self._cache.invalidate()
        tree = self._cache.get()
        on_chain = self._chain.rewards_merkle_root()
        if len(tree) == 0:
            logger.info("rewards_root_publish_skipped", reason="empty_tree")
            return RootPublishResult(False, tree.root_hex, on_chain, None, 0)
        if tree.root_hex.lower() == (on_chain or "").lower():
            logger.info("rewards_root_unchanged", merkle_root=tree.root_hex)
            return RootPublishResult(False, tree.root_hex, on_chain, None, len(tree))

        tx_hash = self._chain.set_rewards_merkle_root(tree.root_hex)
        entries = [
            {"wallet": e.wallet_address, "amount": str(e.cumulative_amount)}
            for e in sorted(tree.entries.values(), key=lambda e: e.wallet_address)
        ]
        with session_scope(self._factory) as session:
            session.add(
                RewardsMerkleSnapshot(
                    merkle_root=tree.root_hex,
                    entries_json=json.dumps(entries),
                    entry_count=len(entries),
                    tx_hash=tx_hash,
                    created_at=int(time.time()),
                )
            )
        logger.info(
            "rewards_root_published",
            merkle_root=tree.root_hex,
            previous_root=on_chain,
            tx_hash=tx_hash,
            entry_count=len(entries),
        )
        return RootPublishResult(True, tree.root_hex, on_chain, tx_hash, len(entries))
