"""
Season Manager

Single active season, its XP multiplier and date window.
"""
