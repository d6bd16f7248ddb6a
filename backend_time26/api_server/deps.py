"""
Request dependencies: service wiring, cron bearer auth, and the caller's wallet.

User authentication happens upstream; the gateway forwards the verified wallet in
X-Wallet-Address. Cron endpoints require Authorization: Bearer <CRON_SECRET>.
"""

from __future__ import annotations

import hmac
import threading
from dataclasses import dataclass

from fastapi import Depends, Header, HTTPException

from backend_time26.claims import ClaimTreeCache, MerkleClaimBuilder, RootPublisher, load_reward_entries
from backend_time26.config import get_settings
from backend_time26.core.exceptions import UserNotFoundError, ValidationError
from backend_time26.database.models import LedgerBalance
from backend_time26.gasless import GaslessEvaluator, GaslessMintFlow
from backend_time26.ledger import BalanceLedger
from backend_time26.oracle import GasEstimator, PriceOracle, RewardChain, Web3RewardChain
from backend_time26.settlement import SettlementOrchestrator
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)


@dataclass
class Services:
    chain: RewardChain
    ledger: BalanceLedger
    settlement: SettlementOrchestrator
    claims: MerkleClaimBuilder
    root_publisher: RootPublisher
    evaluator: GaslessEvaluator
    mint_flow: GaslessMintFlow


def build_services(
    chain: RewardChain,
    *,
    session_factory=None,
    oracle: PriceOracle | None = None,
    ledger: BalanceLedger | None = None,
    tree_cache: ClaimTreeCache | None = None,
) -> Services:
    """Wire every service around one chain gateway. Tests pass fakes and a tmp session factory."""
    ledger = ledger or BalanceLedger(session_factory, rollback_attempts=get_settings().rollback_attempts)
    cache = tree_cache or ClaimTreeCache(lambda: load_reward_entries(session_factory))
    evaluator = GaslessEvaluator(chain, ledger, oracle or PriceOracle(), GasEstimator(chain))
    return Services(
        chain=chain,
        ledger=ledger,
        settlement=SettlementOrchestrator(session_factory, chain),
        claims=MerkleClaimBuilder(chain, cache, session_factory),
        root_publisher=RootPublisher(chain, cache, session_factory),
        evaluator=evaluator,
        mint_flow=GaslessMintFlow(chain, ledger, evaluator, session_factory),
    )


_services: Services | None = None
_services_lock = threading.Lock()


def get_services() -> Services:
    """Dependency: process-wide services on the configured Polygon gateway."""
    global _services
    with _services_lock:
        if _services is None:
            _services = build_services(Web3RewardChain())
            logger.info("api_services_ready")
        return _services


def require_cron(authorization: str | None = Header(None)) -> None:
    """Reject unless Authorization is exactly 'Bearer <CRON_SECRET>'. An unset secret rejects everything."""
    secret = get_settings().cron_secret
    supplied = (authorization or "").strip()
    if not secret or not hmac.compare_digest(supplied.encode(), f"Bearer {secret}".encode()):
        logger.warning("cron_auth_rejected", has_header=bool(supplied))
        raise HTTPException(status_code=401, detail="Unauthorized")


def current_user(
    x_wallet_address: str | None = Header(None),
    services: Services = Depends(get_services),
) -> LedgerBalance:
    """Ledger view of the authenticated wallet. 401 without identity, 404 for unknown users."""
    wallet = (x_wallet_address or "").strip()
    if not wallet:
        raise HTTPException(status_code=401, detail="Unauthorized")
    try:
        return services.ledger.get_balance_by_wallet(wallet)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail="User not found") from e
