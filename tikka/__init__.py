"""Tikka: raffle escrow ledger with an auditable event log"""

__version__ = "1.0.0"
