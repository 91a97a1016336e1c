"""Background synchronization of podcast feeds.

The coordinator runs fetch and reconcile on a thread pool and reports back
through a message inbox polled by the foreground loop.
"""

from .config import SyncConfig
from .coordinator import RefreshTicket, SyncCoordinator
from .messages import (
    ChannelSynced,
    ChannelSyncFailed,
    CoordinatorMessage,
    ListeningStateWriteRequested,
    RefreshChannelList,
    SyncState,
)

__all__ = [
    "SyncConfig",
    "SyncCoordinator",
    "RefreshTicket",
    "SyncState",
    "ChannelSynced",
    "ChannelSyncFailed",
    "CoordinatorMessage",
    "ListeningStateWriteRequested",
    "RefreshChannelList",
]
