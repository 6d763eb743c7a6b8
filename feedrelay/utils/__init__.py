"""Shared utilities: errors, logging and run locking."""
