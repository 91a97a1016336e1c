"""Playback engine interface and the lock-guarded controller around it."""

from .engine import (
    SEEK_STEP_SECONDS,
    AudioEngine,
    PlaybackController,
    PlaybackSnapshot,
    ReadWriteLock,
    format_seconds,
)

__all__ = [
    "SEEK_STEP_SECONDS",
    "AudioEngine",
    "PlaybackController",
    "PlaybackSnapshot",
    "ReadWriteLock",
    "format_seconds",
]
