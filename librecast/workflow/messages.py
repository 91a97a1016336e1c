"""Messages posted to the foreground inbox and the per-refresh state machine."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class SyncState(str, Enum):
    """Lifecycle of one refresh cycle.

    IDLE -> FETCHING -> RECONCILING -> DELIVERED, or FETCHING/RECONCILING -> FAILED.
    DELIVERED and FAILED return to IDLE once the foreground acknowledges them.
    """

    IDLE = "idle"
    FETCHING = "fetching"
    RECONCILING = "reconciling"
    DELIVERED = "delivered"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncState.DELIVERED, SyncState.FAILED)


@dataclass(frozen=True)
class ChannelSynced:
    """A refresh stored a new episode set.

    `channel_id` is the resolved channel; `requested_channel_id` the one the
    refresh was requested for (they differ when the feed URL already belonged
    to another channel).
    """

    channel_id: int
    requested_channel_id: Optional[int] = None
    ticket_id: Optional[int] = None


@dataclass(frozen=True)
class RefreshChannelList:
    """Channel metadata changed; reload the channel list."""


@dataclass(frozen=True)
class ChannelSyncFailed:
    """A refresh failed during fetch or reconcile."""

    channel_id: int
    reason: str
    ticket_id: Optional[int] = None


@dataclass(frozen=True)
class ListeningStateWriteRequested:
    """Persist playback progress for an episode."""

    channel_id: int
    enclosure_url: str
    position_seconds: float = 0.0
    finished: bool = False


CoordinatorMessage = Union[
    ChannelSynced,
    RefreshChannelList,
    ChannelSyncFailed,
    ListeningStateWriteRequested,
]
