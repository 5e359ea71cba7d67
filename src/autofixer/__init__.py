"""Codebase autofixer: retrieval-augmented repair loop for a single module."""

__version__ = "0.1.0"
