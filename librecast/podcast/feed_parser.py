"""RSS/Atom feed fetching and parsing.

Fetches the feed body with a single HTTP request and parses it with the
feedparser library into a channel with an ordered list of items.
"""

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional, Union

import feedparser
import requests

from ..exceptions import FetchError

logger = logging.getLogger(__name__)


@dataclass
class ParsedItem:
    """One feed item. Every field is optional; items are kept in feed order."""

    title: Optional[str] = None
    link: Optional[str] = None
    source: Optional[str] = None
    enclosure_url: Optional[str] = None
    description: Optional[str] = None
    guid: Optional[str] = None
    pub_date: Optional[datetime] = None


@dataclass
class ParsedChannel:
    """Parsed channel metadata and items."""

    feed_url: str
    title: Optional[str] = None
    link: Optional[str] = None
    description: Optional[str] = None
    items: List[ParsedItem] = field(default_factory=list)

    @property
    def enclosure_count(self) -> int:
        return sum(1 for item in self.items if item.enclosure_url)


def parse_pub_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 2822 publish date.

    Returns None for missing or malformed values. Dates without a zone are
    taken as UTC; all others are converted to UTC so stored dates sort
    correctly.
    """
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError, IndexError):
        logger.debug(f"Unparseable publish date: {value!r}")
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


class FeedParser:
    """Fetches and parses podcast feeds.

    Example:
        parser = FeedParser()
        channel = parser.fetch_and_parse("https://example.com/feed.xml")
        for item in channel.items:
            print(item.title, item.enclosure_url)
    """

    # User agent for feed requests
    USER_AGENT = "Librecast/0.1 (+https://github.com/librecast)"

    DEFAULT_TIMEOUT = 30.0

    # Parser complaints that leave the document intact
    TOLERATED_PARSE_ERRORS = (feedparser.CharacterEncodingOverride,)

    def __init__(
        self,
        user_agent: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the feed parser.

        Args:
            user_agent: Custom user agent string for requests
            timeout: Seconds to wait for the feed server
            session: Preconfigured requests session
        """
        self.user_agent = user_agent or self.USER_AGENT
        self.timeout = timeout
        self._session = session or self._create_session()

    def _create_session(self) -> requests.Session:
        """Create a plain requests session. No retry adapter is mounted: one attempt per fetch."""
        session = requests.Session()
        session.headers.update({"User-Agent": self.user_agent})
        return session

    def fetch_and_parse(self, feed_url: str) -> ParsedChannel:
        """Fetch a feed and parse it.

        Args:
            feed_url: HTTP(S) URL of the RSS/Atom feed

        Returns:
            ParsedChannel with channel metadata and items in feed order

        Raises:
            FetchError: On network failure, non-success status or unparseable body
        """
        logger.info(f"Fetching feed: {feed_url}")

        try:
            response = self._session.get(feed_url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(f"Failed to fetch feed: {e}", url=feed_url) from e

        return self.parse_string(response.content, feed_url)

    def parse_string(self, content: Union[str, bytes], feed_url: str = "") -> ParsedChannel:
        """Parse feed content that has already been fetched.

        Args:
            content: RSS/Atom feed content
            feed_url: Original URL of the feed (for reference)

        Raises:
            FetchError: If the content is malformed or not an RSS/Atom feed
        """
        if isinstance(content, str):
            content = content.encode("utf-8")

        # A file object keeps feedparser from treating the content as a URL or path
        feed = feedparser.parse(io.BytesIO(content))

        # A partially parsed document would replace the stored episodes with a subset
        if feed.bozo and not isinstance(feed.get("bozo_exception"), self.TOLERATED_PARSE_ERRORS):
            reason = feed.get("bozo_exception") or "malformed document"
            raise FetchError(f"Failed to parse feed: {reason}", url=feed_url)

        if not feed.get("version"):
            raise FetchError("Failed to parse feed: not an RSS or Atom document", url=feed_url)

        if feed.bozo:
            logger.warning(f"Feed parsing warning for {feed_url}: {feed.bozo_exception}")

        return self._parse_feed(feed, feed_url)

    def _parse_feed(self, feed: feedparser.FeedParserDict, feed_url: str) -> ParsedChannel:
        f = feed.feed

        channel = ParsedChannel(
            feed_url=feed_url,
            title=f.get("title") or None,
            link=f.get("link") or None,
            description=self._clean_html(f.get("description") or f.get("subtitle")),
        )

        for entry in feed.entries:
            channel.items.append(self._parse_item(entry))

        logger.info(
            f"Parsed channel '{channel.title}' with {len(channel.items)} items "
            f"({channel.enclosure_count} with enclosures)"
        )
        return channel

    def _parse_item(self, entry: feedparser.FeedParserDict) -> ParsedItem:
        content = entry.get("content") or [{}]
        return ParsedItem(
            title=entry.get("title") or None,
            link=entry.get("link") or None,
            source=self._extract_source(entry),
            enclosure_url=self._extract_enclosure_url(entry),
            description=self._clean_html(
                entry.get("description") or entry.get("summary") or content[0].get("value")
            ),
            guid=entry.get("id") or entry.get("guid") or None,
            pub_date=parse_pub_date(entry.get("published")),
        )

    def _extract_enclosure_url(self, entry: feedparser.FeedParserDict) -> Optional[str]:
        """Return the first enclosure URL of an entry, or None."""
        for enclosure in entry.get("enclosures", []):
            url = enclosure.get("href") or enclosure.get("url")
            if url:
                return url.strip()

        for link in entry.get("links", []):
            if link.get("rel") == "enclosure" and link.get("href"):
                return link["href"].strip()

        return None

    def _extract_source(self, entry: feedparser.FeedParserDict) -> Optional[str]:
        source = entry.get("source")
        if not source:
            return None
        if isinstance(source, dict):
            return source.get("href") or source.get("url") or None
        return str(source)

    def _clean_html(self, text: Optional[str]) -> Optional[str]:
        """Remove HTML tags from text.

        Args:
            text: Text that may contain HTML

        Returns:
            Cleaned text or None
        """
        if not text:
            return None

        # Remove HTML tags
        clean = re.sub(r"<[^>]+>", "", text)
        # Decode HTML entities
        clean = clean.replace("&amp;", "&")
        clean = clean.replace("&lt;", "<")
        clean = clean.replace("&gt;", ">")
        clean = clean.replace("&quot;", '"')
        clean = clean.replace("&#39;", "'")
        clean = clean.replace("&nbsp;", " ")
        # Normalize whitespace
        clean = re.sub(r"\s+", " ", clean).strip()

        return clean if clean else None
