"""Cake shop order workflow core."""

__version__ = "0.1.0"
