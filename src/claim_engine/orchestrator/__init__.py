"""Claim submission pipeline and lifecycle event recording."""
