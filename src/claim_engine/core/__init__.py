"""Validation gate, canonical hashing, keyed stores and the error taxonomy."""
