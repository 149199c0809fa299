"""In-process event bus and inbound ecosystem event consumer."""
