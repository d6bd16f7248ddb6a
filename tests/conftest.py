"""
Pytest fixtures for TIME26 tests. Uses a temporary SQLite ledger and a fake chain gateway.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from backend_time26.core.exceptions import ChainError
from backend_time26.oracle.chain import (
    TX_STATUS_PENDING,
    TX_STATUS_SUCCESS,
    MintRequest,
    TxOutcome,
)

WALLET_A = "0x" + "aa" * 20
WALLET_B = "0x" + "bb" * 20
WALLET_C = "0x" + "cc" * 20
CRON_SECRET = "test-cron-secret"
SESSION_ID = "6f1c2a9e-7b4d-4c1e-9a2f-5d6e7f8a9b0c"

TOKEN = 10 ** 18


class FakeChain:
    """In-memory RewardChain. Set attributes or `fail_*` flags per test."""

    proof_recorder_address = "0x72ac729a8f6efb68a5d6765ec375ac4578a3c756"

    def __init__(self) -> None:
        self.pool_balance = 1_000_000 * TOKEN
        self.claimed: dict[str, int] = {}
        self.root = "0x" + "00" * 32
        self.mint_cost = 50 * TOKEN
        self.gas_price: int | None = 25 * 10 ** 9
        self.mint_gas: int | None = 150_000
        self.fail_reads = False
        self.fail_pool = False
        self.mint_error: Exception | None = None
        self.next_token_id = 1
        self.minted: list[MintRequest] = []
        self.roots_set: list[str] = []
        self.statuses: dict[str, TxOutcome] = {}

    def reward_pool_balance(self) -> int:
        if self.fail_pool:
            raise ChainError("rpc down")
        return self.pool_balance

    def total_claimed(self, wallet: str) -> int:
        if self.fail_reads:
            raise ChainError("rpc down")
        return self.claimed.get(wallet.lower(), 0)

    def rewards_merkle_root(self) -> str:
        if self.fail_reads:
            raise ChainError("rpc down")
        return self.root

    def calculate_cost_time26(self, duration: int) -> int:
        return self.mint_cost

    def gas_price_wei(self) -> int | None:
        return self.gas_price

    def estimate_mint_gas(self, request: MintRequest) -> int | None:
        return self.mint_gas

    def mint_sponsored(self, request: MintRequest) -> TxOutcome:
        self.minted.append(request)
        if self.mint_error is not None:
            raise self.mint_error
        token_id = self.next_token_id
        self.next_token_id += 1
        return TxOutcome(tx_hash="0x" + f"{token_id:064x}", status=TX_STATUS_SUCCESS, token_id=token_id)

    def set_rewards_merkle_root(self, root: str) -> str:
        self.roots_set.append(root)
        self.root = root
        return "0x" + "ee" * 32

    def transaction_status(self, tx_hash: str) -> TxOutcome:
        return self.statuses.get(tx_hash, TxOutcome(tx_hash=tx_hash, status=TX_STATUS_PENDING))


@pytest.fixture
def ledger_db(tmp_path, monkeypatch):
    """
    Point the ledger at a temporary SQLite DB and create tables.
    Resets engine and settings caches so each test gets a fresh DB. Unset DATABASE_URL so we use SQLite.
    """
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DB_PATH", str(tmp_path / "time26.db"))
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.delenv("REWARD_ANNUAL_POOL", raising=False)

    from backend_time26.config import reset_settings_for_test
    from backend_time26.database import get_session_factory, init_db, reset_engine_for_test

    reset_settings_for_test()
    reset_engine_for_test()
    init_db()
    yield get_session_factory()
    reset_engine_for_test()
    reset_settings_for_test()


@pytest.fixture
def make_user(ledger_db):
    """Factory: make_user(wallet, balance=0, pending_burn=0) -> user id."""
    from backend_time26.database import session_scope
    from backend_time26.database.repositories import create_user

    def _make(wallet: str, balance: int = 0, pending_burn: int = 0, user_id: str | None = None) -> str:
        with session_scope(ledger_db) as session:
            user = create_user(session, wallet, user_id=user_id, balance=balance, pending_burn=pending_burn)
            return user.id

    return _make


@pytest.fixture
def make_session(ledger_db):
    """Factory: make_session(user_id, start, duration, session_id=None) -> session id."""
    from backend_time26.database import session_scope
    from backend_time26.database.repositories import record_drawing_session

    def _make(user_id: str, start: datetime, duration: int, session_id: str | None = None) -> str:
        with session_scope(ledger_db) as session:
            return record_drawing_session(session, user_id, start, duration, session_id=session_id).id

    return _make


@pytest.fixture
def fake_chain():
    return FakeChain()


@pytest.fixture
def sleeps():
    """Records backoff sleeps instead of sleeping."""
    return []


@pytest.fixture
def ledger(ledger_db, sleeps):
    from backend_time26.ledger import BalanceLedger

    return BalanceLedger(ledger_db, sleep=sleeps.append)


@pytest.fixture
def price_oracle():
    """TIME26 at $0.05, POL at $0.45 from a stubbed fetch."""
    from backend_time26.oracle import PriceOracle

    return PriceOracle(
        time26_usd=Decimal("0.05"),
        fallback_pol_usd=Decimal("0.45"),
        ttl_sec=300,
        fetch=lambda url: Decimal("0.45"),
    )


@pytest.fixture
def services(ledger_db, fake_chain, ledger, price_oracle):
    from backend_time26.api_server.deps import build_services

    return build_services(fake_chain, session_factory=ledger_db, oracle=price_oracle, ledger=ledger)


@pytest.fixture
def client(services):
    """FastAPI TestClient with services overridden. Depends on ledger_db so the temp DB is set before app runs."""
    from fastapi.testclient import TestClient

    from backend_time26.api_server.deps import get_services
    from backend_time26.api_server.server import app

    app.dependency_overrides[get_services] = lambda: services
    yield TestClient(app)
    app.dependency_overrides.clear()


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
