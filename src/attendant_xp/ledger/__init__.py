"""
Ledger Writer

Append-only XP ledger and level calculation.
"""
