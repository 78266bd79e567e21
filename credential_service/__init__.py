"""Credential Service: password credentials and encrypted bearer tokens."""

__version__ = "0.1.0"
