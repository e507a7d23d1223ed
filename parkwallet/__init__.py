"""Prepaid-wallet parking service."""

__version__ = "1.0.0"
