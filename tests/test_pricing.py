"""
Price oracle caching/fallback, gas estimation, and gasless eligibility decisions.
"""

from __future__ import annotations

from decimal import Decimal
from unittest import mock

import httpx
import pytest

from backend_time26.core.exceptions import ValidationError
from backend_time26.gasless import GaslessEvaluator, check_eligibility
from backend_time26.oracle import GasEstimator, PriceOracle, PriceSnapshot
from backend_time26.oracle import price_oracle as price_module
from backend_time26.oracle.chain import MintRequest
from conftest import TOKEN, WALLET_A

PRICES = PriceSnapshot(time26_usd=Decimal("0.05"), pol_usd=Decimal("0.45"), pol_source="test", fetched_at=0.0)


def test_pol_to_time26_rate():
    assert PRICES.pol_to_time26_rate() == 9 * TOKEN


def test_price_cache_respects_ttl():
    now = {"t": 0.0}
    fetches = []

    def fetch(url):
        fetches.append(url)
        return Decimal("0.50")

    oracle = PriceOracle(
        time26_usd=Decimal("0.05"), fallback_pol_usd=Decimal("0.45"), url="http://x", ttl_sec=300,
        fetch=fetch, clock=lambda: now["t"],
    )
    assert oracle.get_prices().pol_source == "coingecko"
    now["t"] = 299
    snap = oracle.get_prices()
    assert snap.pol_source == "cache"
    assert snap.pol_usd == Decimal("0.50")
    assert len(fetches) == 1
    now["t"] = 300
    oracle.get_prices()
    assert len(fetches) == 2


def test_price_fetch_failure_falls_back_to_config():
    def fetch(url):
        raise httpx.ConnectTimeout("timeout")

    oracle = PriceOracle(time26_usd=Decimal("0.05"), fallback_pol_usd=Decimal("0.40"), url="http://x", fetch=fetch)
    snap = oracle.get_prices()
    assert snap.pol_source == "fallback"
    assert snap.pol_usd == Decimal("0.40")


def test_price_fetch_failure_keeps_last_good_value():
    now = {"t": 0.0}
    answers = [Decimal("0.60"), RuntimeError("boom")]

    def fetch(url):
        a = answers.pop(0)
        if isinstance(a, Exception):
            raise a
        return a

    oracle = PriceOracle(
        time26_usd=Decimal("0.05"), fallback_pol_usd=Decimal("0.40"), url="http://x", ttl_sec=10,
        fetch=fetch, clock=lambda: now["t"],
    )
    oracle.get_prices()
    now["t"] = 100
    snap = oracle.get_prices()
    assert snap.pol_usd == Decimal("0.60")
    assert snap.pol_source == "cache"


def test_coingecko_parser():
    response = httpx.Response(200, json={"matic-network": {"usd": 0.4321}}, request=httpx.Request("GET", "http://x"))
    with mock.patch.object(httpx.Client, "get", return_value=response):
        assert price_module._fetch_coingecko("http://x") == Decimal("0.4321")


def test_gas_estimator_buffers_and_defaults(fake_chain):
    request = MintRequest(60, "ar://x", "", "", WALLET_A)
    est = GasEstimator(fake_chain).estimate(request)
    assert est.gas_price_wei == 30 * 10 ** 9
    assert est.gas_limit == 180_000
    assert est.estimated is True

    fake_chain.gas_price = None
    fake_chain.mint_gas = None
    est = GasEstimator(fake_chain).estimate(request)
    assert est.gas_price_wei == 30 * 10 ** 9
    assert est.gas_limit == 200_000
    assert est.estimated is False
    assert GasEstimator(fake_chain).estimate().gas_limit == 200_000


def test_eligible_when_balance_covers_total():
    gas_wei = 6 * 10 ** 15
    result = check_eligibility(100 * TOKEN, 50 * TOKEN, gas_wei, PRICES)
    assert result.gas_cost_time26 == 54 * 10 ** 15
    assert result.total_cost_time26 == 50 * TOKEN + 54 * 10 ** 15
    assert result.eligible is True
    assert result.shortfall is None
    assert result.reason is None


def test_insufficient_balance_reports_shortfall():
    result = check_eligibility(10 * TOKEN, 50 * TOKEN, 0, PRICES)
    assert result.eligible is False
    assert result.reason == "insufficient_balance"
    assert result.shortfall == 40 * TOKEN
    assert result.to_dict()["shortfall"] == str(40 * TOKEN)


def test_value_too_low_when_paid_value_only_matches_gas():
    """Free mint: the TIME26 charged for gas is worth exactly the gas, not more."""
    result = check_eligibility(TOKEN, 0, 10 ** 15, PRICES)
    assert result.gas_cost_time26 == 9 * 10 ** 15
    assert result.eligible is False
    assert result.reason == "value_too_low"
    assert result.shortfall is None


@pytest.mark.parametrize("duration", [9, 0, -5, 10.5, "60", True])
def test_duration_validation(ledger, fake_chain, price_oracle, make_user, duration):
    uid = make_user(WALLET_A, balance=100 * TOKEN)
    evaluator = GaslessEvaluator(fake_chain, ledger, price_oracle)
    with pytest.raises(ValidationError):
        evaluator.evaluate(uid, duration)


def test_evaluator_end_to_end(ledger, fake_chain, price_oracle, make_user):
    uid = make_user(WALLET_A, balance=100 * TOKEN)
    result = GaslessEvaluator(fake_chain, ledger, price_oracle).evaluate(uid, 10)
    assert result.eligible is True
    assert result.mint_cost_time26 == 50 * TOKEN
    # 30 gwei × 200k default gas = 0.006 POL = 0.054 TIME26
    assert result.gas_cost_time26 == 54 * 10 ** 15
    assert result.to_dict()["pricing"]["polSource"] == "coingecko"
