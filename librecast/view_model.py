"""Foreground state of the podcasts tab.

Holds what the UI draws (channel list, episode list, selection, waiting and
error strings) and reacts to messages from the sync coordinator. The UI
calls `tick()` once per loop iteration; nothing here blocks on the network.
"""

import logging
from typing import List, Optional, Set

from .db.repository import ChannelRepositoryInterface
from .exceptions import LibrecastError, PersistenceError, PlaybackError
from .player.engine import SEEK_STEP_SECONDS, PlaybackController
from .podcast.listening_state import ListeningStateStore
from .schemas import ChannelSummary, EpisodeListing
from .workflow.coordinator import SyncCoordinator
from .workflow.messages import (
    ChannelSynced,
    ChannelSyncFailed,
    CoordinatorMessage,
    ListeningStateWriteRequested,
    RefreshChannelList,
)

logger = logging.getLogger(__name__)

WAITING_MESSAGE = "Fetching podcast info..."

# Progress saved this close to the end marks the episode finished
FINISHED_THRESHOLD_SECONDS = 5.0


class PodcastsViewModel:
    """Channel and episode lists plus their reactions to sync messages."""

    def __init__(
        self,
        repository: ChannelRepositoryInterface,
        coordinator: SyncCoordinator,
        playback: Optional[PlaybackController] = None,
        listening_store: Optional[ListeningStateStore] = None,
    ):
        self.repository = repository
        self.coordinator = coordinator
        self.playback = playback
        self.listening_store = listening_store or ListeningStateStore(repository)

        self.channels: List[ChannelSummary] = []
        self.episodes: List[EpisodeListing] = []
        self.selected_channel_index: Optional[int] = None
        self.selected_episode_index: Optional[int] = None
        self.active_item: Optional[EpisodeListing] = None
        self.waiting_message: Optional[str] = None
        self.error: Optional[str] = None
        self._waiting_channels: Set[int] = set()

    # --- Selection ---

    @property
    def selected_channel(self) -> Optional[ChannelSummary]:
        if self.selected_channel_index is None:
            return None
        return self.channels[self.selected_channel_index]

    @property
    def selected_episode(self) -> Optional[EpisodeListing]:
        if self.selected_episode_index is None:
            return None
        return self.episodes[self.selected_episode_index]

    def load_channels(self) -> List[ChannelSummary]:
        """Reload the channel list, keeping the selected channel selected by id."""
        previous = self.selected_channel
        self.channels = [ChannelSummary.model_validate(c) for c in self.repository.list_channels()]

        self.selected_channel_index = None
        if previous is not None:
            for index, channel in enumerate(self.channels):
                if channel.id == previous.id:
                    self.selected_channel_index = index
                    break
        if self.selected_channel_index is None and self.channels:
            self.selected_channel_index = 0
        return self.channels

    def select_channel(self, index: int) -> ChannelSummary:
        """Select a channel and show its stored episodes."""
        if not 0 <= index < len(self.channels):
            raise IndexError(f"Channel index {index} out of range")
        self.selected_channel_index = index
        channel = self.channels[index]
        self._load_episodes(channel.id)
        self.selected_episode_index = 0 if self.episodes else None
        return channel

    def select_episode(self, index: int) -> EpisodeListing:
        if not 0 <= index < len(self.episodes):
            raise IndexError(f"Episode index {index} out of range")
        self.selected_episode_index = index
        return self.episodes[index]

    def _load_episodes(self, channel_id: int) -> None:
        rows = self.repository.list_episodes_with_state(channel_id)
        self.episodes = [EpisodeListing.from_row(episode, state) for episode, state in rows]

    def _index_of(self, item: EpisodeListing) -> Optional[int]:
        for index, episode in enumerate(self.episodes):
            if (episode.channel_id, episode.enclosure_url) == (item.channel_id, item.enclosure_url):
                return index
        return None

    def _reload_visible_episodes(self) -> None:
        """Reload the episode list in place, keeping the selected episode where possible."""
        channel = self.selected_channel
        if channel is None:
            return
        selected = self.selected_episode
        self._load_episodes(channel.id)
        index = self._index_of(selected) if selected is not None else None
        if index is None and self.episodes:
            index = 0
        self.selected_episode_index = index

    # --- Sync ---

    def refresh_selected(self):
        """Start a background refresh of the selected channel.

        Returns:
            The RefreshTicket, or None when no channel is selected.
        """
        channel = self.selected_channel
        if channel is None or not channel.link:
            return None

        self._waiting_channels.add(channel.id)
        self.waiting_message = WAITING_MESSAGE
        self.error = None
        self.episodes = []
        self.selected_episode_index = None
        return self.coordinator.request_refresh(channel.id, channel.link)

    def tick(self) -> Optional[CoordinatorMessage]:
        """Consume at most one coordinator message and react to it."""
        message = self.coordinator.poll()
        if message is None:
            return None

        try:
            if isinstance(message, ChannelSynced):
                self._on_channel_synced(message)
            elif isinstance(message, RefreshChannelList):
                self.load_channels()
            elif isinstance(message, ChannelSyncFailed):
                self._on_sync_failed(message)
            elif isinstance(message, ListeningStateWriteRequested):
                self._on_listening_state_write(message)
            else:
                logger.warning(f"Ignoring unknown message {message!r}")
        except PersistenceError as e:
            logger.error(f"Could not reload after {type(message).__name__}: {e}")
            self.error = str(e)
        return message

    def _on_channel_synced(self, message: ChannelSynced) -> None:
        self.coordinator.acknowledge(message.ticket_id)
        requested = message.requested_channel_id
        if requested is None:
            requested = message.channel_id
        self._finish_waiting(requested)

        channel = self.selected_channel
        if channel is None or channel.id not in (message.channel_id, requested):
            logger.debug(f"Channel {message.channel_id} synced while not selected")
            return

        self._load_episodes(message.channel_id)
        index = None
        if self.active_item is not None and self.active_item.channel_id == message.channel_id:
            index = self._index_of(self.active_item)
        if index is None and self.episodes:
            index = 0
        self.selected_episode_index = index

    def _on_sync_failed(self, message: ChannelSyncFailed) -> None:
        self.coordinator.acknowledge(message.ticket_id)
        self._finish_waiting(message.channel_id)
        self.error = f"Sync failed: {message.reason}"

    def _finish_waiting(self, channel_id: int) -> None:
        """Drop the waiting indicator once no refresh of any requested channel is running."""
        if self.coordinator.in_flight(channel_id) == 0:
            self._waiting_channels.discard(channel_id)
        if not self._waiting_channels:
            self.waiting_message = None

    def _on_listening_state_write(self, message: ListeningStateWriteRequested) -> None:
        try:
            if message.finished:
                self.listening_store.mark_finished(message.channel_id, message.enclosure_url)
            else:
                self.listening_store.upsert_position(
                    message.channel_id, message.enclosure_url, message.position_seconds
                )
        except (LibrecastError, ValueError) as e:
            logger.error(f"Could not save listening progress: {e}")
            self.error = str(e)
            return

        channel = self.selected_channel
        if channel is not None and channel.id == message.channel_id:
            self._reload_visible_episodes()

    # --- Playback ---

    def play_selected(self) -> Optional[EpisodeListing]:
        """Open the selected episode, resuming from its stored position.

        Open failures are shown through `error` instead of being raised.
        """
        episode = self.selected_episode
        if episode is None or self.playback is None:
            return None

        self.active_item = episode
        try:
            self.playback.open(episode.enclosure_url)
            if episode.resume_position > 0:
                self.playback.seek(episode.resume_position)
        except PlaybackError as e:
            logger.error(f"Failed to play {episode.enclosure_url}: {e}")
            self.error = str(e)
            return None

        self.error = None
        return episode

    def save_progress(self) -> Optional[ListeningStateWriteRequested]:
        """Queue a write of the active episode's current position."""
        if self.active_item is None or self.playback is None:
            return None

        snapshot = self.playback.snapshot()
        finished = (
            snapshot.duration > 0
            and snapshot.position >= snapshot.duration - FINISHED_THRESHOLD_SECONDS
        )
        message = ListeningStateWriteRequested(
            channel_id=self.active_item.channel_id,
            enclosure_url=self.active_item.enclosure_url,
            position_seconds=0.0 if finished else max(snapshot.position, 0.0),
            finished=finished,
        )
        self.coordinator.post(message)
        return message

    def toggle_pause(self) -> None:
        if self.active_item is not None and self.playback is not None:
            self.playback.toggle_pause()

    def seek_forward(self) -> None:
        if self.active_item is not None and self.playback is not None:
            self.playback.seek_relative(SEEK_STEP_SECONDS)

    def seek_backward(self) -> None:
        if self.active_item is not None and self.playback is not None:
            self.playback.seek_relative(-SEEK_STEP_SECONDS)
