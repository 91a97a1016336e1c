"""Podcast feed synchronization and listening progress."""

__version__ = "0.1.0"
