"""Rank repository files and pack them into size-bounded chunk files."""

__version__ = "0.1.0"
