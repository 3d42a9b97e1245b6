"""Synchronise a local markdown vault with Semble cards and collections."""

__version__ = "0.1.0"
