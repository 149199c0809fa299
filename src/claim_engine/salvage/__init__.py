"""Salvage manifests and auction listing."""
