"""Ledger verification adapters and the canonical event client."""
