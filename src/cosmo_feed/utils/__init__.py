"""Shared helpers for logging and reconnect policies."""
