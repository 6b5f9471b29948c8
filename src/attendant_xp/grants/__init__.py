"""
Grant Engine

Manual XP issuance under configurable limits.
"""
