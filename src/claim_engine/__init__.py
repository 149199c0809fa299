"""Ledger-verified insurance claim adjudication."""

__version__ = "1.0.0"
