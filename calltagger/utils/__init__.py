"""Shared utilities: configuration, logging and secrets."""
