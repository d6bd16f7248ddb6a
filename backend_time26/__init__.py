"""
Backend TIME26: reward settlement and claim-proof engine.

Settles daily drawing time into TIME26 rewards, books them into a per-user
balance ledger, serves Merkle claim proofs against the on-chain root, and
decides/executes gasless mints paid from the off-chain balance.
"""

__version__ = "0.1.0"
