"""Ledger-listener worker process."""
