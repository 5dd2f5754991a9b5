"""Casero loyalty membership core."""

__version__ = "0.1.0"
