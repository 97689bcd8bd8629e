"""Shared helpers: error handling."""
