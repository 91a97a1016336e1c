"""Tests for the podcasts view model."""

import threading

import pytest
from unittest.mock import Mock, patch

from librecast.exceptions import FetchError, PersistenceError
from librecast.player.engine import PlaybackController
from librecast.podcast.feed_parser import FeedParser, ParsedChannel, ParsedItem
from librecast.view_model import (
    FINISHED_THRESHOLD_SECONDS,
    WAITING_MESSAGE,
    PodcastsViewModel,
)
from librecast.workflow.config import SyncConfig
from librecast.workflow.coordinator import SyncCoordinator
from librecast.workflow.messages import (
    ChannelSynced,
    ChannelSyncFailed,
    ListeningStateWriteRequested,
    RefreshChannelList,
    SyncState,
)

WAIT_TIMEOUT = 10

EPISODES = [
    {"enclosure_url": "https://e.com/1.mp3", "ordering": 1, "title": "One"},
    {"enclosure_url": "https://e.com/2.mp3", "ordering": 2, "title": "Two"},
    {"enclosure_url": "https://e.com/3.mp3", "ordering": 3, "title": "Three"},
]


def _parsed(*enclosures, title="Synced title"):
    return ParsedChannel(
        feed_url="https://example.com/feed.xml",
        title=title,
        items=[ParsedItem(title=url, enclosure_url=url) for url in enclosures],
    )


@pytest.fixture
def feed_parser():
    parser = Mock(spec=FeedParser)
    parser.fetch_and_parse.return_value = _parsed(*[e["enclosure_url"] for e in EPISODES])
    return parser


@pytest.fixture
def coordinator(repository, feed_parser):
    coordinator = SyncCoordinator(repository, feed_parser=feed_parser, config=SyncConfig(max_workers=2))
    coordinator.start()
    yield coordinator
    coordinator.stop(wait=True)


@pytest.fixture
def view_model(repository, coordinator, fake_engine):
    return PodcastsViewModel(repository, coordinator, playback=PlaybackController(fake_engine))


@pytest.fixture
def stored_channel(repository, channel):
    """Channel with three stored episodes."""
    repository.replace_episodes(channel.id, EPISODES)
    return channel


def _sync(view_model):
    """Run the selected channel's refresh to completion and return its ticket."""
    ticket = view_model.refresh_selected()
    view_model.coordinator.wait(ticket, timeout=WAIT_TIMEOUT)
    return ticket


class TestChannelSelection:
    """Tests for channel list and selection."""

    def test_load_channels_selects_first(self, view_model, stored_channel):
        channels = view_model.load_channels()

        assert [c.id for c in channels] == [stored_channel.id]
        assert view_model.selected_channel.id == stored_channel.id

    def test_load_channels_empty(self, view_model):
        assert view_model.load_channels() == []
        assert view_model.selected_channel is None

    def test_select_channel_loads_episodes(self, view_model, stored_channel):
        view_model.load_channels()

        view_model.select_channel(0)

        assert [e.title for e in view_model.episodes] == ["One", "Two", "Three"]
        assert view_model.selected_episode.title == "One"

    def test_select_channel_out_of_range(self, view_model):
        view_model.load_channels()

        with pytest.raises(IndexError):
            view_model.select_channel(3)

    def test_reload_preserves_selection_by_id(self, view_model, repository, stored_channel):
        other = repository.create_channel(link="https://other.example/feed")
        view_model.load_channels()
        view_model.select_channel(1)

        repository.delete_channel(stored_channel.id)
        view_model.load_channels()

        assert view_model.selected_channel.id == other.id
        assert view_model.selected_channel_index == 0


class TestRefresh:
    """Tests for refreshing the selected channel and reacting to messages."""

    def test_refresh_without_selection(self, view_model):
        assert view_model.refresh_selected() is None
        assert view_model.waiting_message is None

    def test_refresh_sets_waiting_state(self, view_model, stored_channel, feed_parser):
        release = threading.Event()
        feed_parser.fetch_and_parse.side_effect = lambda url: release.wait(WAIT_TIMEOUT) and _parsed()
        view_model.load_channels()
        view_model.select_channel(0)
        view_model.error = "old error"

        ticket = view_model.refresh_selected()

        assert view_model.waiting_message == WAITING_MESSAGE
        assert view_model.error is None
        assert view_model.episodes == []
        assert view_model.coordinator.state(ticket.ticket_id) == SyncState.FETCHING

        release.set()
        view_model.coordinator.wait(ticket, timeout=WAIT_TIMEOUT)

    def test_tick_without_messages(self, view_model):
        assert view_model.tick() is None

    def test_synced_reloads_episodes(self, view_model, channel):
        view_model.load_channels()

        ticket = _sync(view_model)
        message = view_model.tick()

        assert isinstance(message, ChannelSynced)
        assert [e.enclosure_url for e in view_model.episodes] == [e["enclosure_url"] for e in EPISODES]
        assert view_model.selected_episode_index == 0
        assert view_model.waiting_message is None
        assert view_model.coordinator.state(ticket.ticket_id) == SyncState.IDLE

    def test_one_message_per_tick(self, view_model, channel):
        """Test the channel list reload comes on the following tick."""
        view_model.load_channels()
        _sync(view_model)

        assert isinstance(view_model.tick(), ChannelSynced)
        assert view_model.selected_channel.title == "Stored title"

        assert isinstance(view_model.tick(), RefreshChannelList)
        assert view_model.selected_channel.title == "Synced title"
        assert view_model.tick() is None

    def test_waiting_kept_while_another_refresh_pending(self, view_model, channel, feed_parser):
        view_model.load_channels()
        _sync(view_model)

        release = threading.Event()
        feed_parser.fetch_and_parse.side_effect = lambda url: release.wait(WAIT_TIMEOUT) and _parsed()
        pending = view_model.refresh_selected()

        view_model.tick()

        assert view_model.waiting_message == WAITING_MESSAGE

        release.set()
        view_model.coordinator.wait(pending, timeout=WAIT_TIMEOUT)

    def test_waiting_cleared_after_switching_channel(self, view_model, repository, stored_channel):
        """Test the indicator clears when a refresh finishes for a channel no longer selected."""
        repository.create_channel(link="https://other.example/feed")
        view_model.load_channels()
        view_model.select_channel(0)

        ticket = view_model.refresh_selected()
        view_model.select_channel(1)
        view_model.coordinator.wait(ticket, timeout=WAIT_TIMEOUT)

        assert isinstance(view_model.tick(), ChannelSynced)
        assert view_model.waiting_message is None
        assert view_model.coordinator.in_flight() == 0

    def test_waiting_kept_for_other_pending_channel(self, view_model, repository, stored_channel, feed_parser):
        """Test one channel finishing leaves the indicator up while another channel is fetching."""
        repository.create_channel(link="https://other.example/feed")
        view_model.load_channels()
        view_model.select_channel(0)
        first = view_model.refresh_selected()
        view_model.coordinator.wait(first, timeout=WAIT_TIMEOUT)

        release = threading.Event()
        feed_parser.fetch_and_parse.side_effect = lambda url: release.wait(WAIT_TIMEOUT) and _parsed()
        view_model.select_channel(1)
        second = view_model.refresh_selected()

        view_model.tick()
        assert view_model.waiting_message == WAITING_MESSAGE

        release.set()
        view_model.coordinator.wait(second, timeout=WAIT_TIMEOUT)
        while view_model.tick() is not None:
            pass
        assert view_model.waiting_message is None

    def test_failure_keeps_waiting_while_same_channel_pending(self, view_model, channel, feed_parser):
        """Test a failed refresh leaves the indicator up while another refresh of the channel runs."""
        view_model.load_channels()
        feed_parser.fetch_and_parse.side_effect = FetchError("offline")
        failed = view_model.refresh_selected()
        view_model.coordinator.wait(failed, timeout=WAIT_TIMEOUT)

        release = threading.Event()
        feed_parser.fetch_and_parse.side_effect = lambda url: release.wait(WAIT_TIMEOUT) and _parsed()
        pending = view_model.refresh_selected()

        assert isinstance(view_model.tick(), ChannelSyncFailed)
        assert view_model.waiting_message == WAITING_MESSAGE
        assert view_model.error == "Sync failed: offline"

        release.set()
        view_model.coordinator.wait(pending, timeout=WAIT_TIMEOUT)
        view_model.tick()
        assert view_model.waiting_message is None

    def test_reload_failure_shows_error(self, view_model, repository, channel):
        """Test a database error while reloading episodes is shown instead of raised from tick."""
        view_model.load_channels()
        _sync(view_model)

        with patch.object(
            repository,
            "list_episodes_with_state",
            side_effect=PersistenceError("Database error in list_episodes_with_state: disk I/O error"),
        ):
            assert isinstance(view_model.tick(), ChannelSynced)

        assert "disk I/O error" in view_model.error
        assert view_model.waiting_message is None

    def test_synced_for_other_channel_leaves_list(self, view_model, repository, stored_channel):
        other = repository.create_channel(link="https://other.example/feed")
        view_model.load_channels()
        view_model.select_channel(0)

        view_model.coordinator.post(ChannelSynced(channel_id=other.id, requested_channel_id=other.id))
        view_model.tick()

        assert len(view_model.episodes) == 3
        assert all(e.channel_id == stored_channel.id for e in view_model.episodes)

    def test_sync_failure_shows_error(self, view_model, channel, feed_parser):
        feed_parser.fetch_and_parse.side_effect = FetchError("Failed to fetch feed: 404 Not Found")
        view_model.load_channels()

        ticket = _sync(view_model)
        message = view_model.tick()

        assert isinstance(message, ChannelSyncFailed)
        assert view_model.waiting_message is None
        assert view_model.error == "Sync failed: Failed to fetch feed: 404 Not Found"
        assert view_model.coordinator.state(ticket.ticket_id) == SyncState.IDLE

    def test_active_item_kept_after_refresh(self, view_model, stored_channel):
        """Test the playing episode stays selected when its channel refreshes."""
        view_model.load_channels()
        view_model.select_channel(0)
        view_model.select_episode(2)
        view_model.play_selected()

        _sync(view_model)
        view_model.tick()

        assert view_model.selected_episode.enclosure_url == "https://e.com/3.mp3"

    def test_unrelated_active_item_selects_first(self, view_model, repository, stored_channel):
        other = repository.create_channel(link="https://other.example/feed")
        repository.replace_episodes(other.id, [{"enclosure_url": "https://o.com/x.mp3", "ordering": 1}])
        view_model.load_channels()
        view_model.select_channel(1)
        view_model.play_selected()

        view_model.select_channel(0)
        view_model.select_episode(2)
        _sync(view_model)
        view_model.tick()

        assert view_model.active_item.channel_id == other.id
        assert view_model.selected_episode_index == 0


class TestPlayback:
    """Tests for playback actions and progress saving."""

    def test_play_selected(self, view_model, stored_channel, fake_engine):
        view_model.load_channels()
        view_model.select_channel(0)

        episode = view_model.play_selected()

        assert episode.enclosure_url == "https://e.com/1.mp3"
        assert fake_engine.url == "https://e.com/1.mp3"
        assert fake_engine.position == 0.0
        assert view_model.active_item == episode

    def test_play_resumes_stored_position(self, view_model, repository, stored_channel, fake_engine):
        repository.upsert_listening_position(stored_channel.id, "https://e.com/1.mp3", 300.0)
        view_model.load_channels()
        view_model.select_channel(0)

        view_model.play_selected()

        assert fake_engine.position == 300.0

    def test_finished_episode_restarts(self, view_model, repository, stored_channel, fake_engine):
        repository.upsert_listening_position(stored_channel.id, "https://e.com/1.mp3", 300.0)
        repository.mark_listening_finished(stored_channel.id, "https://e.com/1.mp3")
        view_model.load_channels()
        view_model.select_channel(0)

        view_model.play_selected()

        assert fake_engine.position == 0.0

    def test_open_error_shown_inline(self, view_model, stored_channel, fake_engine):
        fake_engine.fail_open = True
        view_model.load_channels()
        view_model.select_channel(0)

        assert view_model.play_selected() is None
        assert "connection refused" in view_model.error

    def test_play_without_playback(self, repository, coordinator, stored_channel):
        view_model = PodcastsViewModel(repository, coordinator)
        view_model.load_channels()
        view_model.select_channel(0)

        assert view_model.play_selected() is None

    def test_save_progress_round_trip(self, view_model, repository, stored_channel, fake_engine):
        """Test a saved position is written on the next tick and shown in the list."""
        view_model.load_channels()
        view_model.select_channel(0)
        view_model.play_selected()
        fake_engine.position = 125.0

        message = view_model.save_progress()

        assert message == ListeningStateWriteRequested(
            channel_id=stored_channel.id,
            enclosure_url="https://e.com/1.mp3",
            position_seconds=125.0,
            finished=False,
        )
        assert repository.get_listening_state(stored_channel.id, "https://e.com/1.mp3") is None

        assert view_model.tick() == message

        state = repository.get_listening_state(stored_channel.id, "https://e.com/1.mp3")
        assert state.position_seconds == 125.0
        assert view_model.episodes[0].listening_state.position_seconds == 125.0

    def test_save_progress_near_end_marks_finished(self, view_model, repository, stored_channel, fake_engine):
        repository.upsert_listening_position(stored_channel.id, "https://e.com/1.mp3", 10.0)
        view_model.load_channels()
        view_model.select_channel(0)
        view_model.play_selected()
        fake_engine.position = fake_engine.duration() - FINISHED_THRESHOLD_SECONDS + 1

        message = view_model.save_progress()
        view_model.tick()

        assert message.finished is True
        state = repository.get_listening_state(stored_channel.id, "https://e.com/1.mp3")
        assert state.finished is True
        assert state.position_seconds == 0.0

    def test_save_progress_without_active_item(self, view_model):
        assert view_model.save_progress() is None

    def test_invalid_write_sets_error(self, view_model, stored_channel):
        view_model.load_channels()
        view_model.coordinator.post(
            ListeningStateWriteRequested(stored_channel.id, "https://e.com/1.mp3", -4.0)
        )

        view_model.tick()

        assert "position_seconds" in view_model.error

    def test_transport_controls(self, view_model, stored_channel, fake_engine):
        view_model.load_channels()
        view_model.select_channel(0)

        view_model.seek_forward()
        assert fake_engine.position == 0.0

        view_model.play_selected()
        view_model.seek_forward()
        view_model.seek_forward()
        view_model.seek_backward()
        assert fake_engine.position == 10.0

        view_model.toggle_pause()
        assert fake_engine.paused is True
        view_model.toggle_pause()
        assert fake_engine.paused is False
