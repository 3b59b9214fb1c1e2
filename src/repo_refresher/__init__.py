"""Refresh tracked GitHub repositories and notify subscribers."""

__version__ = "0.1.0"
