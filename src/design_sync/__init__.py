"""Bidirectional sync between a visual component tree and its markup source."""

__version__ = "0.1.0"
