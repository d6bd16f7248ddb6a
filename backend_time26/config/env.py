"""
Environment variable loading and parsing helpers for TIME26.

- Loads .env from project root when available (python-dotenv).
- NETWORK: mainnet | testnet (default: mainnet); selects RPC and contract defaults.
- Parsing helpers tolerate blank values and fall back to defaults.
"""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path

from dotenv import load_dotenv

_CONFIG_DIR = Path(__file__).resolve().parent
_BACKEND_DIR = _CONFIG_DIR.parent
_ROOT = _BACKEND_DIR.parent
_ENV_PATH = _ROOT / ".env"

POLYGON_RPC_URL = "https://polygon-rpc.com"
AMOY_RPC_URL = "https://rpc-amoy.polygon.technology"

# Polygon mainnet deployments
MAINNET_TIME26_ADDRESS = "0x56C79b61FFc3D826188DB700791F1A7ECb007FD0"
MAINNET_PROOF_RECORDER_ADDRESS = "0x72Ac729a8f6efb68A5d6765EC375aC4578a3c756"
# Amoy testnet deployments
TESTNET_TIME26_ADDRESS = "0xdb1f87083952FF0267270E209567e52fdcC06A63"
TESTNET_PROOF_RECORDER_ADDRESS = "0xA0b6b101Cde5FeF3458C820928d1202A281001cd"


def load_time26_env() -> None:
    """Load .env from project root. Safe to call multiple times; existing env wins."""
    load_dotenv(_ENV_PATH, override=False)


def env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or "").strip() or default


def env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def env_decimal(name: str, default: str) -> Decimal:
    """Positive Decimal from env; blank, malformed, or non-positive values give default."""
    raw = (os.getenv(name) or "").strip()
    if raw:
        try:
            value = Decimal(raw)
            if value.is_finite() and value > 0:
                return value
        except InvalidOperation:
            pass
    return Decimal(default)


def env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    return default


def get_network() -> str:
    """Return NETWORK from env: mainnet | testnet. Default: mainnet."""
    raw = env_str("NETWORK", "mainnet").lower()
    if raw in ("testnet", "amoy"):
        return "testnet"
    return "mainnet"


def is_testnet() -> bool:
    return get_network() == "testnet"


def default_rpc_url() -> str:
    return AMOY_RPC_URL if is_testnet() else POLYGON_RPC_URL


def default_time26_address() -> str:
    return TESTNET_TIME26_ADDRESS if is_testnet() else MAINNET_TIME26_ADDRESS


def default_proof_recorder_address() -> str:
    return TESTNET_PROOF_RECORDER_ADDRESS if is_testnet() else MAINNET_PROOF_RECORDER_ADDRESS
