"""Per-episode listening progress."""

import logging
import math
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..db.models import ListeningState
from ..db.repository import ChannelRepositoryInterface
from ..exceptions import PersistenceError

logger = logging.getLogger(__name__)


class ListeningStateStore:
    """Reads and writes playback position and the finished flag.

    Rows are keyed by `(channel_id, enclosure_url)`, created lazily on the
    first position update, and never removed when an episode disappears from
    its feed.
    """

    def __init__(self, repository: ChannelRepositoryInterface):
        self.repository = repository

    def get(self, channel_id: int, enclosure_url: str) -> Optional[ListeningState]:
        """Return the stored state, or None if the episode was never played."""
        try:
            return self.repository.get_listening_state(channel_id, enclosure_url)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to read listening state: {e}",
                channel_id=channel_id,
                enclosure_url=enclosure_url,
            ) from e

    def upsert_position(self, channel_id: int, enclosure_url: str, position_seconds: float) -> None:
        """
        Record a playback position.

        Updates the existing row (clearing `finished`) or creates one with
        `finished=False`.

        Raises:
            ValueError: If `position_seconds` is negative or not finite.
            PersistenceError: If the write fails.
        """
        position_seconds = float(position_seconds)
        if not math.isfinite(position_seconds) or position_seconds < 0:
            raise ValueError(f"position_seconds must be a finite value >= 0, got {position_seconds}")

        try:
            self.repository.upsert_listening_position(channel_id, enclosure_url, position_seconds)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to store listening position: {e}",
                channel_id=channel_id,
                enclosure_url=enclosure_url,
            ) from e

        logger.debug(f"Stored position {position_seconds:.1f}s for {enclosure_url}")

    def mark_finished(self, channel_id: int, enclosure_url: str) -> None:
        """
        Mark an episode finished and reset its position so it replays from the start.

        Does nothing when the episode has no stored state.

        Raises:
            PersistenceError: If the write fails.
        """
        try:
            updated = self.repository.mark_listening_finished(channel_id, enclosure_url)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Failed to mark episode finished: {e}",
                channel_id=channel_id,
                enclosure_url=enclosure_url,
            ) from e

        if updated:
            logger.debug(f"Marked finished: {enclosure_url}")
        else:
            logger.debug(f"No listening state to mark finished for {enclosure_url}")
