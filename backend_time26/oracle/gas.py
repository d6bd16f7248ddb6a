"""Gas estimate for the sponsored mint, in native wei."""

from __future__ import annotations

from dataclasses import dataclass

from backend_time26.oracle.chain import (
    DEFAULT_GAS_LIMIT,
    GAS_BUFFER_DENOMINATOR,
    GAS_BUFFER_NUMERATOR,
    MintRequest,
    RewardChain,
)
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

FALLBACK_GAS_PRICE_WEI = 30 * 10 ** 9  # 30 gwei


@dataclass(frozen=True)
class GasEstimate:
    gas_price_wei: int
    gas_limit: int
    estimated: bool  # False when the default gas limit was used

    @property
    def cost_wei(self) -> int:
        return self.gas_price_wei * self.gas_limit


class GasEstimator:
    """Gas price +20% (30 gwei fallback); gas limit from estimateGas +20% or the 200k default."""

    def __init__(self, chain: RewardChain) -> None:
        self._chain = chain

    def estimate(self, request: MintRequest | None = None) -> GasEstimate:
        price = self._chain.gas_price_wei()
        if price is None or price <= 0:
            gas_price = FALLBACK_GAS_PRICE_WEI
        else:
            gas_price = price * GAS_BUFFER_NUMERATOR // GAS_BUFFER_DENOMINATOR

        limit = None
        if request is not None:
            limit = self._chain.estimate_mint_gas(request)
        if limit is None or limit <= 0:
            return GasEstimate(gas_price_wei=gas_price, gas_limit=DEFAULT_GAS_LIMIT, estimated=False)
        return GasEstimate(
            gas_price_wei=gas_price,
            gas_limit=limit * GAS_BUFFER_NUMERATOR // GAS_BUFFER_DENOMINATOR,
            estimated=True,
        )
