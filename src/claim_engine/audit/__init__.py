"""Append-only sealed decision records."""
