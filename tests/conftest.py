"""
Pytest configuration and shared fixtures for librecast tests.

Environment variables read by the code under test are cleared so results do
not depend on the developer's shell or a local .env file.
"""

import os
from typing import List, Optional, Tuple

import pytest

from librecast.db.factory import create_repository
from librecast.exceptions import PlaybackError
from librecast.player.engine import AudioEngine

for _name in (
    "DATABASE_URL",
    "DB_ECHO",
    "DB_POOL_SIZE",
    "DB_MAX_OVERFLOW",
    "FEED_USER_AGENT",
    "FEED_TIMEOUT_SECONDS",
    "LOG_LEVEL",
    "SYNC_MAX_WORKERS",
    "SYNC_BATCH_SIZE",
):
    os.environ.pop(_name, None)


FEED_URL = "https://example.com/feed.xml"


def build_feed(
    items: List[Tuple[str, Optional[str], Optional[str]]],
    title: str = "Test Podcast",
    description: str = "A test podcast",
) -> str:
    """
    Build an RSS 2.0 document.

    Parameters:
        items: (title, enclosure_url, pub_date) tuples in feed order; None
            leaves the element out.
        title: Channel title.
        description: Channel description.
    """
    entries = []
    for item_title, enclosure_url, pub_date in items:
        parts = [f"<title>{item_title}</title>"]
        if enclosure_url:
            parts.append(f'<enclosure url="{enclosure_url}" type="audio/mpeg" length="1000"/>')
        if pub_date:
            parts.append(f"<pubDate>{pub_date}</pubDate>")
        entries.append("<item>" + "".join(parts) + "</item>")

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>{title}</title>
    <link>https://example.com</link>
    <description>{description}</description>
    {"".join(entries)}
  </channel>
</rss>"""


class FakeAudioEngine(AudioEngine):
    """In-memory engine that records the commands it receives."""

    def __init__(self, duration: float = 3600.0, fail_open: bool = False):
        self._duration = duration
        self.fail_open = fail_open
        self.url = None
        self.position = 0.0
        self.paused = True
        self._volume = 1.0
        self.error = None

    def open(self, url: str) -> None:
        if self.fail_open:
            self.error = "connection refused"
            raise PlaybackError("Failed to open stream: connection refused", url=url)
        self.url = url
        self.position = 0.0
        self.paused = False

    def play(self) -> None:
        self.paused = False

    def pause(self) -> None:
        self.paused = True

    def seek(self, seconds: float) -> None:
        self.position = min(seconds, self._duration)

    def seek_relative(self, delta: float) -> None:
        self.position = min(max(self.position + delta, 0.0), self._duration)

    def current_position(self) -> float:
        return self.position

    def duration(self) -> float:
        return self._duration

    def is_paused(self) -> bool:
        return self.paused

    def last_error(self):
        return self.error

    def volume(self) -> float:
        return self._volume

    def set_volume(self, value: float) -> None:
        self._volume = value


@pytest.fixture
def database_url(tmp_path):
    """SQLite database file unique to the test."""
    return f"sqlite:///{tmp_path / 'test.db'}"


@pytest.fixture
def repository(database_url):
    """Create a repository with tables created from the ORM metadata."""
    repo = create_repository(database_url, create_tables=True)
    yield repo
    repo.close()


@pytest.fixture
def channel(repository):
    """A stored channel for FEED_URL."""
    return repository.create_channel(link=FEED_URL, title="Stored title")


@pytest.fixture
def fake_engine():
    return FakeAudioEngine()


@pytest.fixture
def feed_url():
    return FEED_URL


@pytest.fixture
def make_feed():
    """Return the RSS builder so tests can describe feeds inline."""
    return build_feed
