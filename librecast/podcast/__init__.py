"""Podcast feed handling.

Provides functionality for:
- Feed fetching and parsing
- Episode reconciliation
- Listening progress
"""

from .feed_parser import FeedParser, ParsedChannel, ParsedItem
from .listening_state import ListeningStateStore
from .reconciler import EpisodeReconciler

__all__ = [
    "FeedParser",
    "ParsedChannel",
    "ParsedItem",
    "EpisodeReconciler",
    "ListeningStateStore",
]
