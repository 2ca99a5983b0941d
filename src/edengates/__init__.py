"""
Edens Gates voting core.

Wallet sessions, fee transactions and the vote protocol for the founder portal.
"""

__version__ = "0.1.0"
