"""Utility functions for the ledger kernel."""
