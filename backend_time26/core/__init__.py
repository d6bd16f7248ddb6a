"""
Core utilities: domain exceptions shared by ledger, settlement, claims, gasless, and API layers.
"""
