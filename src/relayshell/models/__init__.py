"""Shared model types."""
