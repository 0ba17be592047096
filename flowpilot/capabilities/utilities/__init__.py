"""Utility capabilities that need no credentials."""
