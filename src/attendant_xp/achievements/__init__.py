"""
Achievement Engine

Criteria evaluation and idempotent unlocking.
"""
