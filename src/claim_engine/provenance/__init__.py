"""Pre-loss provenance index and scoring."""
