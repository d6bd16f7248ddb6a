"""
Polygon chain gateway: read views and operator-signed transactions for TIME26.

- TIME26 token: balanceOf (reward pool snapshot).
- ProofRecorder: totalClaimed, rewardsMerkleRoot, calculateCostTime26, mintSponsoredNative,
  setRewardsMerkleRoot.
- Submissions wait for a receipt with a bounded timeout (TX_TIMEOUT_SEC, default 120s).
  Any failure while waiting after broadcast is treated like a timeout.
  A timeout raises ChainTimeoutError carrying the tx hash; the caller reconciles later
  with transaction_status(), never by resubmitting.
Config: POLYGON_RPC_URL, OPERATOR_PRIVATE_KEY, TIME26_ADDRESS, PROOF_RECORDER_ADDRESS.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound
from web3.logs import DISCARD

from backend_time26.config import get_settings
from backend_time26.core.exceptions import ChainError, ChainTimeoutError
from backend_time26.time26_logging import get_logger

logger = get_logger(__name__)

DEFAULT_GAS_LIMIT = 200_000
GAS_BUFFER_NUMERATOR = 12
GAS_BUFFER_DENOMINATOR = 10
ZERO_ROOT = "0x" + "00" * 32

TX_STATUS_PENDING = "pending"
TX_STATUS_SUCCESS = "success"
TX_STATUS_REVERTED = "reverted"

TIME26_ABI: list[dict[str, Any]] = [
    {
        "name": "balanceOf",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
]

PROOF_RECORDER_ABI: list[dict[str, Any]] = [
    {
        "name": "totalClaimed",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "account", "type": "address"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "rewardsMerkleRoot",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "bytes32"}],
    },
    {
        "name": "calculateCostTime26",
        "type": "function",
        "stateMutability": "view",
        "inputs": [{"name": "duration", "type": "uint256"}],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "mintSponsoredNative",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "duration", "type": "uint256"},
            {"name": "metadataURI", "type": "string"},
            {"name": "displayName", "type": "string"},
            {"name": "message", "type": "string"},
            {"name": "recipient", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "name": "setRewardsMerkleRoot",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "root", "type": "bytes32"}],
        "outputs": [],
    },
    {
        "name": "ExistenceMinted",
        "type": "event",
        "anonymous": False,
        "inputs": [
            {"name": "id", "type": "uint256", "indexed": True},
            {"name": "owner", "type": "address", "indexed": True},
            {"name": "duration", "type": "uint256", "indexed": False},
            {"name": "metadataURI", "type": "string", "indexed": False},
            {"name": "displayName", "type": "string", "indexed": False},
            {"name": "message", "type": "string", "indexed": False},
            {"name": "nftTokenId", "type": "uint256", "indexed": False},
        ],
    },
]


@dataclass(frozen=True)
class MintRequest:
    duration: int
    metadata_uri: str
    display_name: str
    message: str
    recipient: str


@dataclass(frozen=True)
class TxOutcome:
    """Result of a submitted or looked-up transaction."""

    tx_hash: str
    status: str
    token_id: int | None = None


@runtime_checkable
class RewardChain(Protocol):
    """Everything the reward engine needs from the chain. Fakes implement this in tests."""

    @property
    def proof_recorder_address(self) -> str: ...

    def reward_pool_balance(self) -> int: ...

    def total_claimed(self, wallet: str) -> int: ...

    def rewards_merkle_root(self) -> str: ...

    def calculate_cost_time26(self, duration: int) -> int: ...

    def gas_price_wei(self) -> int | None: ...

    def estimate_mint_gas(self, request: MintRequest) -> int | None: ...

    def mint_sponsored(self, request: MintRequest) -> TxOutcome: ...

    def set_rewards_merkle_root(self, root: str) -> str: ...

    def transaction_status(self, tx_hash: str) -> TxOutcome: ...


@dataclass
class ChainConfig:
    """Gateway config. Defaults come from Settings (env)."""

    rpc_url: str = field(default_factory=lambda: get_settings().rpc_url)
    operator_private_key: str = field(default_factory=lambda: get_settings().operator_private_key)
    time26_address: str = field(default_factory=lambda: get_settings().time26_address)
    proof_recorder_address: str = field(default_factory=lambda: get_settings().proof_recorder_address)
    tx_timeout_sec: float = field(default_factory=lambda: get_settings().tx_timeout_sec)
    request_timeout_sec: float = 15.0


def _hex(value: Any) -> str:
    """HexBytes / bytes / str → lower-case 0x-prefixed hex."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    s = str(value).lower()
    return s if s.startswith("0x") else "0x" + s


def _with_gas_buffer(value: int) -> int:
    return value * GAS_BUFFER_NUMERATOR // GAS_BUFFER_DENOMINATOR


class Web3RewardChain:
    """RewardChain over web3.py HTTPProvider with a single operator account."""

    def __init__(self, config: ChainConfig | None = None, w3: Web3 | None = None) -> None:
        self._config = config or ChainConfig()
        self._w3 = w3 or Web3(
            Web3.HTTPProvider(self._config.rpc_url, request_kwargs={"timeout": self._config.request_timeout_sec})
        )
        self._token = self._w3.eth.contract(
            address=Web3.to_checksum_address(self._config.time26_address), abi=TIME26_ABI
        )
        self._recorder = self._w3.eth.contract(
            address=Web3.to_checksum_address(self._config.proof_recorder_address), abi=PROOF_RECORDER_ABI
        )
        self._account: Any = None

    @property
    def proof_recorder_address(self) -> str:
        return self._config.proof_recorder_address

    def _operator(self) -> Any:
        if self._account is None:
            key = (self._config.operator_private_key or "").strip()
            if not key:
                raise ChainError("OPERATOR_PRIVATE_KEY not configured")
            try:
                self._account = self._w3.eth.account.from_key(key)
            except Exception as e:
                logger.warning("chain_operator_key_load_failed", error=str(e))
                raise ChainError("Invalid OPERATOR_PRIVATE_KEY") from e
        return self._account

    def _call(self, name: str, fn: Any) -> Any:
        try:
            return fn.call()
        except Exception as e:
            logger.warning("chain_call_failed", function=name, error=str(e))
            raise ChainError(f"{name} call failed: {e}") from e

    # -- views ---------------------------------------------------------------

    def reward_pool_balance(self) -> int:
        """TIME26 held by the ProofRecorder (reward pool)."""
        recorder = Web3.to_checksum_address(self._config.proof_recorder_address)
        return int(self._call("balanceOf", self._token.functions.balanceOf(recorder)))

    def total_claimed(self, wallet: str) -> int:
        return int(self._call("totalClaimed", self._recorder.functions.totalClaimed(Web3.to_checksum_address(wallet))))

    def rewards_merkle_root(self) -> str:
        return _hex(self._call("rewardsMerkleRoot", self._recorder.functions.rewardsMerkleRoot()))

    def calculate_cost_time26(self, duration: int) -> int:
        return int(self._call("calculateCostTime26", self._recorder.functions.calculateCostTime26(int(duration))))

    def gas_price_wei(self) -> int | None:
        try:
            return int(self._w3.eth.gas_price)
        except Exception as e:
            logger.warning("chain_gas_price_failed", error=str(e))
            return None

    def _mint_fn(self, request: MintRequest) -> Any:
        return self._recorder.functions.mintSponsoredNative(
            int(request.duration),
            request.metadata_uri,
            request.display_name,
            request.message,
            Web3.to_checksum_address(request.recipient),
        )

    def estimate_mint_gas(self, request: MintRequest) -> int | None:
        """estimateGas for the sponsored mint from the operator, or None when it cannot be estimated."""
        try:
            sender = self._operator().address
            return int(self._mint_fn(request).estimate_gas({"from": sender}))
        except Exception as e:
            logger.debug("chain_estimate_gas_failed", error=str(e))
            return None

    # -- transactions ----------------------------------------------------------

    def _send(self, name: str, fn: Any) -> tuple[str, Any]:
        """Sign and send fn from the operator, then wait for the receipt. Returns (tx_hash, receipt)."""
        account = self._operator()
        try:
            nonce = self._w3.eth.get_transaction_count(account.address, "pending")
            gas_price = self._w3.eth.gas_price
            try:
                gas = _with_gas_buffer(int(fn.estimate_gas({"from": account.address})))
            except Exception:
                gas = DEFAULT_GAS_LIMIT
            tx = fn.build_transaction(
                {
                    "from": account.address,
                    "nonce": nonce,
                    "gas": gas,
                    "gasPrice": _with_gas_buffer(int(gas_price)),
                    "chainId": self._w3.eth.chain_id,
                }
            )
            signed = account.sign_transaction(tx)
            tx_hash = _hex(self._w3.eth.send_raw_transaction(signed.raw_transaction))
        except ChainError:
            raise
        except Exception as e:
            logger.error("chain_send_failed", function=name, error=str(e))
            raise ChainError(f"{name} send failed: {e}") from e

        logger.info("chain_tx_sent", function=name, tx_hash=tx_hash)
        try:
            receipt = self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self._config.tx_timeout_sec)
        except TimeExhausted as e:
            logger.warning("chain_tx_timeout", function=name, tx_hash=tx_hash, timeout_sec=self._config.tx_timeout_sec)
            raise ChainTimeoutError(tx_hash, self._config.tx_timeout_sec) from e
        except Exception as e:
            # Broadcast already happened; the outcome is unknown until reconciled
            logger.warning("chain_tx_receipt_failed", function=name, tx_hash=tx_hash, error=str(e))
            raise ChainTimeoutError(tx_hash, self._config.tx_timeout_sec) from e
        if int(receipt["status"]) != 1:
            logger.error("chain_tx_reverted", function=name, tx_hash=tx_hash)
            raise ChainError(f"{name} reverted: {tx_hash}")
        logger.info("chain_tx_confirmed", function=name, tx_hash=tx_hash, block=receipt.get("blockNumber"))
        return tx_hash, receipt

    def _token_id(self, receipt: Any) -> int | None:
        try:
            events = self._recorder.events.ExistenceMinted().process_receipt(receipt, errors=DISCARD)
        except Exception as e:
            logger.debug("chain_event_decode_failed", error=str(e))
            return None
        if not events:
            return None
        return int(events[0]["args"]["id"])

    def mint_sponsored(self, request: MintRequest) -> TxOutcome:
        tx_hash, receipt = self._send("mintSponsoredNative", self._mint_fn(request))
        return TxOutcome(tx_hash=tx_hash, status=TX_STATUS_SUCCESS, token_id=self._token_id(receipt))

    def set_rewards_merkle_root(self, root: str) -> str:
        root_bytes = bytes.fromhex(root[2:] if root.startswith("0x") else root)
        if len(root_bytes) != 32:
            raise ChainError(f"Merkle root must be 32 bytes, got {len(root_bytes)}")
        tx_hash, _ = self._send("setRewardsMerkleRoot", self._recorder.functions.setRewardsMerkleRoot(root_bytes))
        return tx_hash

    def transaction_status(self, tx_hash: str) -> TxOutcome:
        """Look up a previously sent transaction; pending when no receipt exists yet."""
        try:
            receipt = self._w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            return TxOutcome(tx_hash=tx_hash, status=TX_STATUS_PENDING)
        except Exception as e:
            raise ChainError(f"receipt lookup failed for {tx_hash}: {e}") from e
        if int(receipt["status"]) != 1:
            return TxOutcome(tx_hash=tx_hash, status=TX_STATUS_REVERTED)
        return TxOutcome(tx_hash=tx_hash, status=TX_STATUS_SUCCESS, token_id=self._token_id(receipt))
