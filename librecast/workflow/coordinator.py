"""Background feed synchronization with a polled inbox.

Refreshes run on a thread pool so the foreground loop never blocks on the
network or the database. Results come back as messages on a FIFO queue that
the foreground drains one message per tick.
"""

import itertools
import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..db.repository import ChannelRepositoryInterface
from ..exceptions import FetchError, LibrecastError
from ..podcast.feed_parser import FeedParser
from ..podcast.reconciler import EpisodeReconciler
from .config import SyncConfig
from .messages import (
    ChannelSynced,
    ChannelSyncFailed,
    CoordinatorMessage,
    RefreshChannelList,
    SyncState,
)

logger = logging.getLogger(__name__)


@dataclass
class RefreshTicket:
    """Handle for one refresh cycle."""

    ticket_id: int
    channel_id: int
    channel_url: str
    resolved_channel_id: Optional[int] = None
    error: Optional[str] = None
    future: Optional[Future] = field(default=None, repr=False)


class SyncCoordinator:
    """Runs fetch + reconcile off the foreground path.

    Every `request_refresh` starts an independent unit of work; refreshes of
    the same channel are neither deduplicated nor cancelled. Each unit posts
    `ChannelSynced` followed by `RefreshChannelList` on success, or
    `ChannelSyncFailed` on failure.

    Example:
        coordinator = SyncCoordinator(repository)
        coordinator.start()
        coordinator.request_refresh(channel.id, channel.link)

        # foreground loop
        message = coordinator.poll()
        if message is not None:
            handle(message)
    """

    def __init__(
        self,
        repository: ChannelRepositoryInterface,
        feed_parser: Optional[FeedParser] = None,
        reconciler: Optional[EpisodeReconciler] = None,
        config: Optional[SyncConfig] = None,
    ):
        """Initialize the coordinator.

        Args:
            repository: Database repository shared with the foreground.
            feed_parser: Feed fetcher; a default FeedParser when omitted.
            reconciler: Episode reconciler; one is built from `config` when omitted.
            config: Sync settings.
        """
        self.config = config or SyncConfig()
        self.repository = repository
        self.feed_parser = feed_parser or FeedParser()
        self.reconciler = reconciler or EpisodeReconciler(
            repository, batch_size=self.config.batch_size
        )

        self._inbox: "queue.Queue[CoordinatorMessage]" = queue.Queue()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()
        self._ticket_ids = itertools.count(1)
        self._tickets: Dict[int, RefreshTicket] = {}
        self._states: Dict[int, SyncState] = {}

    # --- Lifecycle ---

    def start(self) -> None:
        """Start the background thread pool."""
        if self._executor is not None:
            return
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers,
            thread_name_prefix="feedsync",
        )
        logger.info(f"SyncCoordinator started with {self.config.max_workers} workers")

    def stop(self, wait: bool = True) -> None:
        """Stop the thread pool. Running refreshes are never aborted.

        Args:
            wait: If True, wait for in-flight refreshes to complete.
        """
        if self._executor is None:
            return
        in_flight = self.in_flight()
        if in_flight > 0 and wait:
            logger.info(f"Waiting for {in_flight} refreshes to complete...")
        self._executor.shutdown(wait=wait)
        self._executor = None
        logger.info("SyncCoordinator stopped")

    # --- Foreground API ---

    def request_refresh(self, channel_id: int, channel_url: str) -> RefreshTicket:
        """Start a background refresh of one channel and return immediately.

        Args:
            channel_id: Channel the refresh is requested for.
            channel_url: Feed URL to fetch.

        Returns:
            RefreshTicket tracking the cycle.

        Raises:
            RuntimeError: If start() has not been called.
        """
        if self._executor is None:
            raise RuntimeError("SyncCoordinator not started")

        ticket = RefreshTicket(
            ticket_id=next(self._ticket_ids),
            channel_id=channel_id,
            channel_url=channel_url,
        )
        with self._lock:
            self._tickets[ticket.ticket_id] = ticket
            self._states[ticket.ticket_id] = SyncState.FETCHING

        ticket.future = self._executor.submit(self._run_refresh, ticket)
        ticket.future.add_done_callback(lambda f: self._on_refresh_complete(ticket, f))

        logger.debug(f"Submitted refresh {ticket.ticket_id} for channel {channel_id}")
        return ticket

    def poll(self) -> Optional[CoordinatorMessage]:
        """Return the oldest queued message without blocking, or None."""
        try:
            return self._inbox.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> List[CoordinatorMessage]:
        """Return every queued message in order."""
        messages = []
        while True:
            message = self.poll()
            if message is None:
                return messages
            messages.append(message)

    def post(self, message: CoordinatorMessage) -> None:
        """Enqueue a message. Safe to call from any thread."""
        self._inbox.put(message)

    def pending_messages(self) -> int:
        return self._inbox.qsize()

    def state(self, ticket_id: int) -> SyncState:
        """Current state of a refresh cycle. Unknown or acknowledged cycles are IDLE."""
        with self._lock:
            return self._states.get(ticket_id, SyncState.IDLE)

    def acknowledge(self, ticket_id: Optional[int]) -> None:
        """Mark a delivered or failed cycle as consumed, returning it to IDLE."""
        if ticket_id is None:
            return
        with self._lock:
            state = self._states.get(ticket_id)
            if state is not None and state.is_terminal:
                del self._states[ticket_id]
                self._tickets.pop(ticket_id, None)

    def in_flight(self, channel_id: Optional[int] = None) -> int:
        """Number of refreshes still fetching or reconciling, optionally for one channel."""
        with self._lock:
            return sum(
                1
                for ticket_id, state in self._states.items()
                if state in (SyncState.FETCHING, SyncState.RECONCILING)
                and (channel_id is None or self._tickets[ticket_id].channel_id == channel_id)
            )

    def wait(self, ticket: RefreshTicket, timeout: Optional[float] = None) -> Optional[int]:
        """Block until a refresh finishes. Meant for scripts and tests, not the UI loop.

        Returns:
            The resolved channel ID, or None if the refresh failed.
        """
        if ticket.future is None:
            return None
        return ticket.future.result(timeout=timeout)

    # --- Background unit of work ---

    def _set_state(self, ticket: RefreshTicket, state: SyncState) -> None:
        with self._lock:
            self._states[ticket.ticket_id] = state

    def _run_refresh(self, ticket: RefreshTicket) -> Optional[int]:
        """Fetch and reconcile one channel. Never raises."""
        try:
            parsed = self.feed_parser.fetch_and_parse(ticket.channel_url)
            self._set_state(ticket, SyncState.RECONCILING)
            channel_id = self.reconciler.reconcile(ticket.channel_url, ticket.channel_id, parsed)
        except FetchError as e:
            logger.error(f"Refresh of channel {ticket.channel_id} failed: {e}")
            self._fail(ticket, str(e))
            return None
        except LibrecastError as e:
            logger.exception(f"Refresh of channel {ticket.channel_id} could not be stored: {e}")
            self._fail(ticket, str(e))
            return None
        except Exception as e:
            logger.exception(f"Unexpected error refreshing channel {ticket.channel_id}")
            self._fail(ticket, str(e) or type(e).__name__)
            return None

        ticket.resolved_channel_id = channel_id
        self._set_state(ticket, SyncState.DELIVERED)
        self.post(
            ChannelSynced(
                channel_id=channel_id,
                requested_channel_id=ticket.channel_id,
                ticket_id=ticket.ticket_id,
            )
        )
        self.post(RefreshChannelList())
        logger.info(f"Refresh {ticket.ticket_id} delivered for channel {channel_id}")
        return channel_id

    def _fail(self, ticket: RefreshTicket, reason: str) -> None:
        ticket.error = reason
        self._set_state(ticket, SyncState.FAILED)
        self.post(
            ChannelSyncFailed(
                channel_id=ticket.channel_id,
                reason=reason,
                ticket_id=ticket.ticket_id,
            )
        )

    def _on_refresh_complete(self, ticket: RefreshTicket, future: Future) -> None:
        """Callback when a refresh future completes."""
        if future.cancelled():
            logger.warning(f"Refresh {ticket.ticket_id} was cancelled before it started")
            self._fail(ticket, "cancelled")
            return
        exc = future.exception()
        if exc:
            logger.error(f"Refresh {ticket.ticket_id} raised outside its error handling: {exc}")
