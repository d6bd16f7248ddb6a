"""
Gasless minting: eligibility, sponsored mint paid from the off-chain balance, reconciliation.
"""

from backend_time26.gasless.eligibility import (
    GaslessEligibilityResult,
    GaslessEvaluator,
    check_eligibility,
)
from backend_time26.gasless.mint import GaslessMintFlow, GaslessMintInput, MintOutcome

__all__ = [
    "GaslessEligibilityResult",
    "GaslessEvaluator",
    "GaslessMintFlow",
    "GaslessMintInput",
    "MintOutcome",
    "check_eligibility",
]
