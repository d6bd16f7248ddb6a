"""
Chain and market data: Polygon gateway, POL/TIME26 price oracle, gas estimation.
"""

from backend_time26.oracle.chain import ChainConfig, MintRequest, RewardChain, TxOutcome, Web3RewardChain
from backend_time26.oracle.gas import GasEstimate, GasEstimator
from backend_time26.oracle.price_oracle import PriceOracle, PriceSnapshot

__all__ = [
    "ChainConfig",
    "GasEstimate",
    "GasEstimator",
    "MintRequest",
    "PriceOracle",
    "PriceSnapshot",
    "RewardChain",
    "TxOutcome",
    "Web3RewardChain",
]
