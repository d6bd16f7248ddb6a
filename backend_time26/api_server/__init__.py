"""
HTTP API: FastAPI app over settlement, ledger, claims, and gasless minting.
"""
