"""
Leaderboard Aggregator

Ranked standings computed from the ledger.
"""
