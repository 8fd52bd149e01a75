"""Shared helpers: settings and locking."""
