"""
Web3 chain gateway send path over a mocked Web3: what counts as reverted, failed, or unknown.
"""

from __future__ import annotations

from unittest import mock

import pytest

from backend_time26.core.exceptions import ChainError, ChainTimeoutError
from backend_time26.oracle.chain import ChainConfig, MintRequest, Web3RewardChain
from conftest import WALLET_A, WALLET_B, WALLET_C

SENT_HASH = "0x" + "ab" * 32


@pytest.fixture
def w3():
    w3 = mock.MagicMock()
    w3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)
    return w3


@pytest.fixture
def chain(w3):
    config = ChainConfig(
        rpc_url="http://rpc.invalid",
        operator_private_key="0x" + "11" * 32,
        time26_address=WALLET_B,
        proof_recorder_address=WALLET_C,
        tx_timeout_sec=5,
    )
    return Web3RewardChain(config, w3=w3)


def _request():
    return MintRequest(60, "ar://meta", "Ada", "hi", WALLET_A)


def test_receipt_poll_error_after_broadcast_is_unknown_outcome(chain, w3):
    w3.eth.wait_for_transaction_receipt.side_effect = ConnectionError("connection reset by peer")
    with pytest.raises(ChainTimeoutError) as exc:
        chain.mint_sponsored(_request())
    assert exc.value.tx_hash == SENT_HASH


def test_reverted_receipt_is_definite_failure(chain, w3):
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 7}
    with pytest.raises(ChainError) as exc:
        chain.mint_sponsored(_request())
    assert not isinstance(exc.value, ChainTimeoutError)


def test_send_error_before_broadcast_is_definite_failure(chain, w3):
    w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")
    with pytest.raises(ChainError) as exc:
        chain.mint_sponsored(_request())
    assert not isinstance(exc.value, ChainTimeoutError)
    w3.eth.wait_for_transaction_receipt.assert_not_called()


def test_missing_operator_key_is_definite_failure(w3):
    config = ChainConfig(
        rpc_url="http://rpc.invalid",
        operator_private_key="",
        time26_address=WALLET_B,
        proof_recorder_address=WALLET_C,
        tx_timeout_sec=5,
    )
    with pytest.raises(ChainError):
        Web3RewardChain(config, w3=w3).mint_sponsored(_request())
    w3.eth.send_raw_transaction.assert_not_called()


def test_token_id_is_existence_minted_id(chain, w3):
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 9}
    event = w3.eth.contract.return_value.events.ExistenceMinted.return_value
    event.process_receipt.return_value = [{"args": {"id": 7, "owner": WALLET_A, "nftTokenId": 99}}]

    outcome = chain.mint_sponsored(_request())

    assert outcome.tx_hash == SENT_HASH
    assert outcome.token_id == 7
