"""Episode reconciliation.

Maps a freshly parsed feed onto the stored episode set of a channel. A
reconcile fully replaces the channel's episodes, so the stored set always
mirrors the latest fetch.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db.models import Channel
from ..db.repository import DEFAULT_BATCH_SIZE, ChannelRepositoryInterface
from ..exceptions import PersistenceError
from .feed_parser import ParsedChannel

logger = logging.getLogger(__name__)


def build_episode_rows(parsed: ParsedChannel) -> List[Dict[str, Any]]:
    """
    Turn parsed items into episode rows.

    Items without an enclosure URL are dropped, as are repeats of an
    enclosure URL already seen (first occurrence wins). `ordering` is assigned
    1..N over the kept items in feed order.

    Parameters:
        parsed (ParsedChannel): Parsed feed.

    Returns:
        list[dict]: Episode column values ready for `replace_episodes`.
    """
    rows = []
    seen = set()

    for position, item in enumerate(parsed.items, start=1):
        if not item.enclosure_url:
            logger.debug(f"Skipping item {position} without enclosure: {item.title}")
            continue
        if item.enclosure_url in seen:
            logger.debug(f"Skipping item {position} with repeated enclosure: {item.enclosure_url}")
            continue
        seen.add(item.enclosure_url)

        rows.append(
            {
                "enclosure_url": item.enclosure_url,
                "ordering": len(rows) + 1,
                "title": item.title,
                "link": item.link,
                "source": item.source,
                "description": item.description,
                "guid": item.guid,
                "pub_date": item.pub_date,
            }
        )

    return rows


class EpisodeReconciler:
    """Writes a parsed feed into the repository for one channel.

    Example:
        reconciler = EpisodeReconciler(repository)
        channel_id = reconciler.reconcile(feed_url, selected_channel_id, parsed)
    """

    def __init__(
        self,
        repository: ChannelRepositoryInterface,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        """
        Parameters:
            repository (ChannelRepositoryInterface): Persistence backend.
            batch_size (int): Rows per INSERT statement when replacing episodes.
        """
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.repository = repository
        self.batch_size = batch_size

    def reconcile(self, channel_url: str, channel_id_hint: int, parsed: ParsedChannel) -> int:
        """
        Replace the stored episode set of a channel with the parsed feed.

        Parameters:
            channel_url (str): Feed URL the content was fetched from; the channel identity.
            channel_id_hint (int): ID of the channel the refresh was requested for. Used
                only when no channel has `channel_url` as its link.
            parsed (ParsedChannel): Freshly parsed feed.

        Returns:
            int: The resolved channel ID.

        Raises:
            PersistenceError: If any database write fails. The previous episode
                set is left intact in that case.
        """
        try:
            channel_id = self._resolve_channel(channel_url, channel_id_hint, parsed)
            rows = build_episode_rows(parsed)
            inserted = self.repository.replace_episodes(
                channel_id, rows, batch_size=self.batch_size
            )
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to store episodes: {e}", url=channel_url, channel_id=channel_id_hint
            ) from e

        logger.info(
            f"Reconciled channel {channel_id}: {inserted} episodes "
            f"({len(parsed.items) - inserted} items skipped)"
        )
        return channel_id

    def _resolve_channel(self, channel_url: str, channel_id_hint: int, parsed: ParsedChannel) -> int:
        existing = self.repository.get_channel_by_link(channel_url)
        if existing:
            if existing.id != channel_id_hint:
                logger.info(
                    f"Feed {channel_url} belongs to channel {existing.id}, "
                    f"ignoring requested channel {channel_id_hint}"
                )
            self._update_channel_metadata(existing, parsed)
            return existing.id

        hinted = self.repository.get_channel(channel_id_hint)
        if hinted:
            self.repository.update_channel(
                channel_id_hint,
                link=channel_url,
                title=parsed.title or hinted.title,
                description=parsed.description or hinted.description,
            )
            return channel_id_hint

        channel = self.repository.create_channel(
            link=channel_url,
            title=parsed.title,
            description=parsed.description,
            channel_id=channel_id_hint,
        )
        return channel.id

    def _update_channel_metadata(self, channel: Channel, parsed: ParsedChannel) -> None:
        """Apply the feed's title and description where present and changed."""
        updates: Dict[str, Optional[str]] = {}

        if parsed.title and parsed.title != channel.title:
            updates["title"] = parsed.title
        if parsed.description and parsed.description != channel.description:
            updates["description"] = parsed.description

        if updates:
            self.repository.update_channel(channel.id, **updates)
            logger.debug(f"Updated channel metadata: {list(updates.keys())}")
