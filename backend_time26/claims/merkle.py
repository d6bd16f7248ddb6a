"""
Sorted-pair keccak256 Merkle tree over (wallet, cumulative amount) entries.

leaf = keccak256(abi.encodePacked(address, uint256)): 20-byte address followed by the
32-byte big-endian amount, matching the ProofRecorder claim check. Leaves are sorted
before building and each pair is hashed in sorted order, so the root does not depend
on entry order. An odd trailing node is carried up unchanged.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from web3 import Web3

UINT256_MAX = 2 ** 256 - 1


def _address_bytes(wallet: str) -> bytes:
    w = wallet.lower()
    raw = bytes.fromhex(w[2:] if w.startswith("0x") else w)
    if len(raw) != 20:
        raise ValueError(f"Address must be 20 bytes: {wallet!r}")
    return raw


def _to_bytes32(value: str | bytes) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return bytes.fromhex(value[2:] if value.startswith("0x") else value)


def to_hex(value: bytes) -> str:
    return "0x" + value.hex()


def hash_leaf(wallet: str, amount: int) -> bytes:
    if amount < 0 or amount > UINT256_MAX:
        raise ValueError(f"Amount out of uint256 range: {amount}")
    return bytes(Web3.keccak(_address_bytes(wallet) + amount.to_bytes(32, "big")))


def hash_pair(a: bytes, b: bytes) -> bytes:
    if a > b:
        a, b = b, a
    return bytes(Web3.keccak(a + b))


def verify_proof(leaf: str | bytes, proof: Iterable[str | bytes], root: str | bytes) -> bool:
    """Standard sorted-pair verification: fold the proof into the leaf and compare to root."""
    node = _to_bytes32(leaf)
    for sibling in proof:
        node = hash_pair(node, _to_bytes32(sibling))
    return node == _to_bytes32(root)


@dataclass(frozen=True)
class MerkleRewardEntry:
    wallet_address: str
    cumulative_amount: int

    @property
    def leaf(self) -> bytes:
        return hash_leaf(self.wallet_address, self.cumulative_amount)


class RewardsMerkleTree:
    """Immutable tree. Build once per snapshot of positive balances."""

    def __init__(self, entries: Sequence[MerkleRewardEntry]) -> None:
        self.entries: dict[str, MerkleRewardEntry] = {}
        for e in entries:
            wallet = e.wallet_address.lower()
            if wallet in self.entries:
                raise ValueError(f"Duplicate wallet in rewards tree: {wallet}")
            self.entries[wallet] = MerkleRewardEntry(wallet, int(e.cumulative_amount))

        leaves = sorted(e.leaf for e in self.entries.values())
        self._layers: list[list[bytes]] = [leaves]
        while len(self._layers[-1]) > 1:
            level = self._layers[-1]
            nxt = [hash_pair(level[i], level[i + 1]) for i in range(0, len(level) - 1, 2)]
            if len(level) % 2 == 1:
                nxt.append(level[-1])
            self._layers.append(nxt)
        self._index = {leaf: i for i, leaf in enumerate(leaves)}

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def root(self) -> bytes:
        """32 zero bytes for an empty tree; the leaf itself for a single entry."""
        top = self._layers[-1]
        return top[0] if top else b"\x00" * 32

    @property
    def root_hex(self) -> str:
        return to_hex(self.root)

    def get(self, wallet: str) -> MerkleRewardEntry | None:
        return self.entries.get(wallet.lower())

    def proof_for_leaf(self, leaf: bytes) -> list[bytes]:
        idx = self._index.get(leaf)
        if idx is None:
            raise KeyError("leaf not in tree")
        proof: list[bytes] = []
        for level in self._layers[:-1]:
            sibling = idx ^ 1
            if sibling < len(level):
                proof.append(level[sibling])
            idx //= 2
        return proof

    def proof(self, wallet: str) -> list[str]:
        entry = self.get(wallet)
        if entry is None:
            raise KeyError(wallet)
        return [to_hex(p) for p in self.proof_for_leaf(entry.leaf)]
