"""Warranty cross-reference and dual-dip detection."""
