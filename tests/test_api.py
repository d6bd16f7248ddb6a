"""
FastAPI endpoints: cron auth, settlement, claim proof, spend balance, gasless mint.

Uses temporary SQLite DB and fake chain via conftest fixtures.
"""

from __future__ import annotations

from datetime import timedelta
from unittest import mock

from sqlalchemy import func, select

from backend_time26.core.exceptions import ChainTimeoutError
from backend_time26.database import session_scope
from backend_time26.database.schema import DailySettlement, LedgerTransaction
from conftest import CRON_SECRET, SESSION_ID, TOKEN, WALLET_A, WALLET_B, utc

AUTH = {"Authorization": f"Bearer {CRON_SECRET}"}
DAY = "2025-03-14"


def _count(factory, model):
    with session_scope(factory) as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_cron_rejects_wrong_secret_without_touching_db(client, services):
    with mock.patch.object(services.settlement, "settle_day") as settle:
        assert client.get("/cron/rewards", headers={"Authorization": "Bearer wrong"}).status_code == 401
        assert client.get("/cron/rewards").status_code == 401
        assert client.post("/cron/rewards-root", headers={"Authorization": CRON_SECRET}).status_code == 401
    settle.assert_not_called()


def test_cron_rewards_settles_then_skips(client, ledger_db, make_user, make_session):
    a = make_user(WALLET_A)
    b = make_user(WALLET_B)
    start = utc(2025, 3, 14, 8)
    make_session(a, start, 60)
    make_session(b, start + timedelta(seconds=30), 60)

    r1 = client.get("/cron/rewards", params={"day": DAY}, headers=AUTH)
    assert r1.status_code == 200
    body = r1.json()
    assert body["success"] is True
    assert body["dayId"] == DAY
    assert body["participantCount"] == 2
    assert body["totalSeconds"] == 90
    assert len(body["userRewards"]) == 2

    r2 = client.get("/cron/rewards", params={"day": DAY}, headers=AUTH)
    assert r2.json()["skipped"] is True
    assert _count(ledger_db, DailySettlement) == 1
    assert _count(ledger_db, LedgerTransaction) == 2


def test_cron_rewards_bad_day(client):
    r = client.get("/cron/rewards", params={"day": "03/14/2025"}, headers=AUTH)
    assert r.status_code == 400


def test_cron_rewards_root(client, fake_chain, make_user):
    make_user(WALLET_A, balance=10)
    r = client.post("/cron/rewards-root", headers=AUTH)
    assert r.status_code == 200
    assert r.json()["updated"] is True
    assert r.json()["entryCount"] == 1
    assert fake_chain.root == r.json()["merkleRoot"]


def test_user_endpoints_require_wallet_header(client):
    assert client.get("/user/spend-balance").status_code == 401
    assert client.get("/user/claim-proof").status_code == 401


def test_unknown_user_is_404(client, ledger_db):
    r = client.get("/user/spend-balance", headers={"X-Wallet-Address": WALLET_A})
    assert r.status_code == 404


def test_get_spend_balance(client, make_user):
    make_user(WALLET_A, balance=5 * TOKEN, pending_burn=2)
    r = client.get("/user/spend-balance", headers={"X-Wallet-Address": WALLET_A})
    assert r.json() == {"balance": str(5 * TOKEN), "pendingBurn": "2"}


def test_spend_balance_debits(client, make_user):
    make_user(WALLET_A, balance=5 * TOKEN)
    r = client.post(
        "/user/spend-balance",
        json={"amount": str(2 * TOKEN), "reason": "badge", "sessionId": "s-1"},
        headers={"X-Wallet-Address": WALLET_A},
    )
    assert r.status_code == 200
    assert r.json()["balance"] == str(3 * TOKEN)
    assert r.json()["pendingBurn"] == str(2 * TOKEN)


def test_spend_balance_insufficient_is_400_with_numbers(client, ledger_db, make_user):
    make_user(WALLET_A, balance=3)
    r = client.post(
        "/user/spend-balance",
        json={"amount": "4", "reason": "badge"},
        headers={"X-Wallet-Address": WALLET_A},
    )
    assert r.status_code == 400
    assert r.json()["available"] == "3"
    assert r.json()["requested"] == "4"
    assert _count(ledger_db, LedgerTransaction) == 0


def test_spend_balance_rejects_bad_amount(client, make_user):
    make_user(WALLET_A, balance=3)
    for amount in ("0", "-1", "1.5", "abc"):
        r = client.post(
            "/user/spend-balance",
            json={"amount": amount, "reason": "badge"},
            headers={"X-Wallet-Address": WALLET_A},
        )
        assert r.status_code == 400, amount


def test_claim_proof_endpoint(client, fake_chain, services, make_user):
    make_user(WALLET_A, balance=10 * TOKEN)
    fake_chain.root = services.claims.cache.get().root_hex
    r = client.get("/user/claim-proof", headers={"X-Wallet-Address": WALLET_A})
    body = r.json()
    assert r.status_code == 200
    assert body["claimable"] is True
    assert body["claimableAmount"] == str(10 * TOKEN)
    assert body["rootMatches"] is True
    assert body["contractAddress"] == fake_chain.proof_recorder_address


def test_gasless_eligibility_endpoint(client, make_user):
    make_user(WALLET_A, balance=TOKEN)
    r = client.get("/mint/gasless/eligibility", params={"duration": 60}, headers={"X-Wallet-Address": WALLET_A})
    assert r.status_code == 200
    body = r.json()
    assert body["eligible"] is False
    assert body["reason"] == "insufficient_balance"
    assert int(body["shortfall"]) == int(body["totalCostTime26"]) - TOKEN

    r = client.get("/mint/gasless/eligibility", params={"duration": 5}, headers={"X-Wallet-Address": WALLET_A})
    assert r.status_code == 400


def _mint_body():
    return {"sessionId": SESSION_ID, "metadataURI": "ar://meta", "displayName": "Ada", "message": "hi", "duration": 60}


def test_gasless_mint_success(client, make_user, make_session):
    uid = make_user(WALLET_A, balance=100 * TOKEN)
    make_session(uid, utc(2025, 3, 14, 12), 60, session_id=SESSION_ID)
    r = client.post("/mint/gasless", json=_mint_body(), headers={"X-Wallet-Address": WALLET_A})
    assert r.status_code == 200
    assert r.json()["success"] is True
    assert r.json()["tokenId"] == "1"

    again = client.post("/mint/gasless", json=_mint_body(), headers={"X-Wallet-Address": WALLET_A})
    assert again.status_code == 409


def test_gasless_mint_ineligible(client, make_user, make_session):
    uid = make_user(WALLET_A, balance=TOKEN)
    make_session(uid, utc(2025, 3, 14, 12), 60, session_id=SESSION_ID)
    r = client.post("/mint/gasless", json=_mint_body(), headers={"X-Wallet-Address": WALLET_A})
    assert r.status_code == 400
    assert r.json()["available"] == str(TOKEN)
    assert int(r.json()["shortfall"]) > 0


def test_gasless_mint_timeout_then_reconcile(client, fake_chain, make_user, make_session):
    uid = make_user(WALLET_A, balance=100 * TOKEN)
    make_session(uid, utc(2025, 3, 14, 12), 60, session_id=SESSION_ID)
    tx_hash = "0x" + "cd" * 32
    fake_chain.mint_error = ChainTimeoutError(tx_hash, 120)

    r = client.post("/mint/gasless", json=_mint_body(), headers={"X-Wallet-Address": WALLET_A})
    assert r.status_code == 202
    assert r.json() == {"success": False, "status": "pending", "txHash": tx_hash}

    assert client.post(f"/mint/gasless/{tx_hash}/reconcile").status_code == 401
    r = client.post(f"/mint/gasless/{tx_hash}/reconcile", headers=AUTH)
    assert r.status_code == 200
    assert r.json()["status"] == "pending"


def test_gasless_mint_unknown_session(client, make_user):
    make_user(WALLET_A, balance=100 * TOKEN)
    r = client.post("/mint/gasless", json=_mint_body(), headers={"X-Wallet-Address": WALLET_A})
    assert r.status_code == 404


def test_gasless_mint_field_limits_are_400(client, make_user, make_session):
    uid = make_user(WALLET_A, balance=100 * TOKEN)
    make_session(uid, utc(2025, 3, 14, 12), 60, session_id=SESSION_ID)
    for bad in ({"sessionId": "sess-1"}, {"displayName": "x" * 31}, {"message": "x" * 281}):
        r = client.post("/mint/gasless", json={**_mint_body(), **bad}, headers={"X-Wallet-Address": WALLET_A})
        assert r.status_code == 400, bad

    body = _mint_body()
    del body["displayName"]
    r = client.post("/mint/gasless", json=body, headers={"X-Wallet-Address": WALLET_A})
    assert r.status_code == 200
