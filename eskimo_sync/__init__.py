"""Eskimo EPOS catalog and order synchronization service."""

__version__ = "1.0.0"
