"""Unified ledger: reconcile and categorize bank, card and trading transactions."""

__version__ = "0.1.0"
