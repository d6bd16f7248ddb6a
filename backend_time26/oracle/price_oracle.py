"""
USD price oracle for TIME26 and POL.

TIME26 has a static USD price from config (TIME26_PRICE_USD). POL is fetched from
CoinGecko with a 5s timeout and cached for PRICE_CACHE_TTL_SEC; on any fetch
failure the previous cached value is kept, else POL_PRICE_USD.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from typing import Callable

import httpx

from backend_time26.config import get_settings
from backend_time26.core.exceptions import PriceOracleError
from backend_time26.rewards.allocation import REWARD_CONTEXT, WEI_PER_TOKEN
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

COINGECKO_TIMEOUT_SEC = 5.0
COINGECKO_ASSET_ID = "matic-network"


@dataclass(frozen=True)
class PriceSnapshot:
    time26_usd: Decimal
    pol_usd: Decimal
    pol_source: str  # coingecko | cache | fallback
    fetched_at: float

    def pol_to_time26_rate(self) -> int:
        """floor(pol_usd / time26_usd × 10^18): TIME26 wei per 1 POL."""
        if self.time26_usd <= 0:
            raise PriceOracleError("TIME26 price must be positive")
        ratio = REWARD_CONTEXT.divide(self.pol_usd, self.time26_usd)
        return int(REWARD_CONTEXT.multiply(ratio, Decimal(WEI_PER_TOKEN)).to_integral_value(rounding=ROUND_DOWN))

    def to_dict(self) -> dict[str, str]:
        return {"time26Usd": str(self.time26_usd), "polUsd": str(self.pol_usd), "polSource": self.pol_source}


def _fetch_coingecko(url: str) -> Decimal:
    with httpx.Client(timeout=COINGECKO_TIMEOUT_SEC) as client:
        resp = client.get(url)
        resp.raise_for_status()
        data = resp.json()
    try:
        price = Decimal(str(data[COINGECKO_ASSET_ID]["usd"]))
    except (KeyError, TypeError, InvalidOperation) as e:
        raise PriceOracleError(f"Unexpected CoinGecko payload: {data!r}") from e
    if not price.is_finite() or price <= 0:
        raise PriceOracleError(f"Non-positive POL price: {price}")
    return price


class PriceOracle:
    """Cached POL/TIME26 USD prices. Thread-safe; the cache is safe to lose."""

    def __init__(
        self,
        *,
        time26_usd: Decimal | None = None,
        fallback_pol_usd: Decimal | None = None,
        url: str | None = None,
        ttl_sec: float | None = None,
        fetch: Callable[[str], Decimal] = _fetch_coingecko,
        clock: Callable[[], float] = time.time,
    ) -> None:
        s = get_settings()
        self._time26_usd = time26_usd if time26_usd is not None else s.time26_price_usd
        self._fallback_pol_usd = fallback_pol_usd if fallback_pol_usd is not None else s.pol_price_usd
        self._url = url or s.coingecko_url
        self._ttl = ttl_sec if ttl_sec is not None else s.price_cache_ttl_sec
        self._fetch = fetch
        self._clock = clock
        self._lock = threading.Lock()
        self._pol_usd: Decimal | None = None
        self._fetched_at: float = 0.0

    def get_prices(self) -> PriceSnapshot:
        now = self._clock()
        with self._lock:
            if self._pol_usd is not None and now - self._fetched_at < self._ttl:
                return PriceSnapshot(self._time26_usd, self._pol_usd, "cache", self._fetched_at)
            try:
                price = self._fetch(self._url)
            except Exception as e:
                logger.warning("pol_price_fetch_failed", error=str(e))
                if self._pol_usd is not None:
                    return PriceSnapshot(self._time26_usd, self._pol_usd, "cache", self._fetched_at)
                return PriceSnapshot(self._time26_usd, self._fallback_pol_usd, "fallback", now)
            self._pol_usd = price
            self._fetched_at = now
            logger.debug("pol_price_refreshed", pol_usd=str(price))
            return PriceSnapshot(self._time26_usd, price, "coingecko", now)

    def invalidate(self) -> None:
        with self._lock:
            self._pol_usd = None
            self._fetched_at = 0.0
