"""
Application settings.

Settings are read once from the environment (and .env) into a frozen dataclass.
Tests call reset_settings_for_test() after monkeypatching env vars.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from backend_time26.config.env import (
    default_proof_recorder_address,
    default_rpc_url,
    default_time26_address,
    env_decimal,
    env_float,
    env_int,
    env_str,
    load_time26_env,
)

DEFAULT_DB_PATH = "time26.db"
DEFAULT_COINGECKO_URL = "https://api.coingecko.com/api/v3/simple/price?ids=matic-network&vs_currencies=usd"


def _database_url() -> str:
    """DATABASE_URL (e.g. PostgreSQL) when set; else SQLite at DB_PATH."""
    url = env_str("DATABASE_URL")
    if url:
        return url
    return f"sqlite:///{env_str('DB_PATH', DEFAULT_DB_PATH)}"


@dataclass(frozen=True)
class Settings:
    """Typed runtime configuration for API, settlement job, and chain gateway."""

    database_url: str = field(default_factory=_database_url)
    cron_secret: str = field(default_factory=lambda: env_str("CRON_SECRET"))

    # Chain
    rpc_url: str = field(default_factory=lambda: env_str("POLYGON_RPC_URL", default_rpc_url()))
    operator_private_key: str = field(default_factory=lambda: env_str("OPERATOR_PRIVATE_KEY"))
    time26_address: str = field(default_factory=lambda: env_str("TIME26_ADDRESS", default_time26_address()))
    proof_recorder_address: str = field(
        default_factory=lambda: env_str("PROOF_RECORDER_ADDRESS", default_proof_recorder_address())
    )
    tx_timeout_sec: float = field(default_factory=lambda: env_float("TX_TIMEOUT_SEC", 120.0))

    # Pricing
    time26_price_usd: Decimal = field(default_factory=lambda: env_decimal("TIME26_PRICE_USD", "0.05"))
    pol_price_usd: Decimal = field(default_factory=lambda: env_decimal("POL_PRICE_USD", "0.45"))
    coingecko_url: str = field(default_factory=lambda: env_str("COINGECKO_URL", DEFAULT_COINGECKO_URL))
    price_cache_ttl_sec: float = field(default_factory=lambda: env_float("PRICE_CACHE_TTL_SEC", 300.0))

    # Rewards
    reward_annual_pool: Decimal = field(default_factory=lambda: env_decimal("REWARD_ANNUAL_POOL", "31500000"))
    merkle_cache_ttl_sec: float = field(default_factory=lambda: env_float("MERKLE_CACHE_TTL_SEC", 300.0))
    rollback_attempts: int = field(default_factory=lambda: env_int("ROLLBACK_ATTEMPTS", 3))


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return process-wide settings, loading .env on first use."""
    global _settings
    if _settings is None:
        load_time26_env()
        _settings = Settings()
    return _settings


def reset_settings_for_test() -> None:
    """Drop cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
