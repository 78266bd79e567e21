"""Core services: hashing, keys, tokens, persistence and the account lifecycle."""
