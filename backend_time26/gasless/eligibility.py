"""
Gasless mint eligibility.

A user may mint with the sponsor paying gas when the off-chain balance covers the
mint cost plus the gas cost converted to TIME26, and the TIME26 paid is worth more
in USD than the gas the sponsor spends.

    gas_time26 = gas_wei × floor(pol_usd / time26_usd × 10^18) / 10^18
    total      = mint_cost + gas_time26
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from backend_time26.core.exceptions import ValidationError
from backend_time26.ledger.balance_ledger import BalanceLedger
from backend_time26.oracle.chain import MintRequest, RewardChain
from backend_time26.oracle.gas import GasEstimate, GasEstimator
from backend_time26.oracle.price_oracle import PriceOracle, PriceSnapshot
from backend_time26.rewards.allocation import REWARD_CONTEXT, WEI_PER_TOKEN
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

MIN_DURATION_SEC = 10

REASON_INSUFFICIENT_BALANCE = "insufficient_balance"
REASON_VALUE_TOO_LOW = "value_too_low"


@dataclass(frozen=True)
class GaslessEligibilityResult:
    eligible: bool
    unclaimed_balance: int
    mint_cost_time26: int
    gas_cost_time26: int
    total_cost_time26: int
    shortfall: int | None = None
    reason: str | None = None
    gas_cost_wei: int = 0
    prices: PriceSnapshot | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "eligible": self.eligible,
            "unclaimedBalance": str(self.unclaimed_balance),
            "mintCostTime26": str(self.mint_cost_time26),
            "gasCostTime26": str(self.gas_cost_time26),
            "totalCostTime26": str(self.total_cost_time26),
            "gasCostWei": str(self.gas_cost_wei),
        }
        if self.shortfall is not None:
            out["shortfall"] = str(self.shortfall)
        if self.reason:
            out["reason"] = self.reason
        if self.prices is not None:
            out["pricing"] = self.prices.to_dict()
        return out


def validate_duration(duration: Any) -> int:
    if isinstance(duration, bool) or not isinstance(duration, int):
        raise ValidationError("duration must be an integer number of seconds")
    if duration < MIN_DURATION_SEC:
        raise ValidationError(f"duration must be at least {MIN_DURATION_SEC} seconds")
    return duration


def gas_cost_in_time26(gas_wei: int, prices: PriceSnapshot) -> int:
    return gas_wei * prices.pol_to_time26_rate() // WEI_PER_TOKEN


def _usd(amount_wei: int, price_usd: Decimal) -> Decimal:
    return REWARD_CONTEXT.multiply(REWARD_CONTEXT.divide(Decimal(amount_wei), Decimal(WEI_PER_TOKEN)), price_usd)


def check_eligibility(
    balance: int,
    mint_cost_time26: int,
    gas_wei: int,
    prices: PriceSnapshot,
) -> GaslessEligibilityResult:
    """Pure decision given balance, mint cost, gas, and prices."""
    gas_time26 = gas_cost_in_time26(gas_wei, prices)
    total = mint_cost_time26 + gas_time26
    shortfall = None
    reason = None
    if balance < total:
        shortfall = total - balance
        reason = REASON_INSUFFICIENT_BALANCE
    elif not _usd(total, prices.time26_usd) > _usd(gas_wei, prices.pol_usd):
        reason = REASON_VALUE_TOO_LOW
    return GaslessEligibilityResult(
        eligible=reason is None,
        unclaimed_balance=balance,
        mint_cost_time26=mint_cost_time26,
        gas_cost_time26=gas_time26,
        total_cost_time26=total,
        shortfall=shortfall,
        reason=reason,
        gas_cost_wei=gas_wei,
        prices=prices,
    )


class GaslessEvaluator:
    def __init__(
        self,
        chain: RewardChain,
        ledger: BalanceLedger,
        oracle: PriceOracle,
        gas: GasEstimator | None = None,
    ) -> None:
        self._chain = chain
        self._ledger = ledger
        self._oracle = oracle
        self._gas = gas or GasEstimator(chain)

    def evaluate(self, user_id: str, duration: int, request: MintRequest | None = None) -> GaslessEligibilityResult:
        """
        Eligibility for minting `duration` seconds. Pass the full MintRequest to estimate
        gas for the exact call; without it the default gas limit is used.
        ChainError from the cost lookup propagates.
        """
        duration = validate_duration(duration)
        balance = self._ledger.get_balance(user_id).balance
        mint_cost = self._chain.calculate_cost_time26(duration)
        estimate: GasEstimate = self._gas.estimate(request)
        prices = self._oracle.get_prices()
        result = check_eligibility(balance, mint_cost, estimate.cost_wei, prices)
        logger.info(
            "gasless_eligibility",
            user_id=user_id,
            duration=duration,
            eligible=result.eligible,
            total_cost=str(result.total_cost_time26),
            balance=str(balance),
            reason=result.reason,
            gas_estimated=estimate.estimated,
            pol_source=prices.pol_source,
        )
        return result
