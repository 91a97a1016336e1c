"""CLI commands for channel sync and listening progress.

Provides commands for:
- Applying database migrations
- Adding and removing channels by feed URL
- Syncing a channel's episodes in the background coordinator
- Listing channels and episodes with their progress
- Recording playback position and finished episodes
"""

import argparse
import logging
import sys
from typing import Optional, Sequence

from .argparse_shared import (
    add_channel_id_argument,
    add_enclosure_argument,
    add_log_level_argument,
    get_base_parser,
)
from .config import Config
from .db.factory import create_repository
from .db.migrate import current_revision, upgrade_database
from .exceptions import LibrecastError, NotFoundError
from .player.engine import format_seconds
from .podcast.feed_parser import FeedParser
from .podcast.listening_state import ListeningStateStore
from .schemas import ChannelSummary, EpisodeListing
from .workflow.config import SyncConfig
from .workflow.coordinator import SyncCoordinator
from .workflow.messages import ChannelSynced, ChannelSyncFailed

logger = logging.getLogger(__name__)

# Channels offered by `seed` on a fresh database
DEFAULT_CHANNELS = [
    ("Dasko i Mladja", "https://podcast.daskoimladja.com/feed.xml"),
    ("Agelast", "https://feeds.transistor.fm/agelast-podcast"),
]


def _open_repository(config: Config):
    return create_repository(
        database_url=config.DATABASE_URL,
        pool_size=config.DB_POOL_SIZE,
        max_overflow=config.DB_MAX_OVERFLOW,
        echo=config.DB_ECHO,
    )


def _require_channel(repository, channel_id: int):
    channel = repository.get_channel(channel_id)
    if channel is None:
        raise NotFoundError("Channel not found", channel_id=channel_id)
    return channel


def _run_sync(repository, config: Config, channel_id: int, channel_url: str) -> bool:
    """
    Run one refresh through the coordinator and report its messages.

    Returns:
        bool: True if the refresh delivered, False if it failed.
    """
    coordinator = SyncCoordinator(
        repository,
        feed_parser=FeedParser(
            user_agent=config.FEED_USER_AGENT,
            timeout=config.FEED_TIMEOUT_SECONDS,
        ),
        config=SyncConfig.from_env(),
    )
    coordinator.start()
    try:
        ticket = coordinator.request_refresh(channel_id, channel_url)
        coordinator.wait(ticket)
    finally:
        coordinator.stop(wait=True)

    delivered = False
    for message in coordinator.drain():
        if isinstance(message, ChannelSynced):
            channel = repository.get_channel(message.channel_id)
            count = repository.count_episodes(message.channel_id)
            title = channel.title if channel is not None else None
            print(f"\nSynced channel {message.channel_id}: {title or '-'}")
            print(f"  Episodes: {count}")
            delivered = True
        elif isinstance(message, ChannelSyncFailed):
            print(f"Error: sync of channel {message.channel_id} failed: {message.reason}")
        coordinator.acknowledge(getattr(message, "ticket_id", None))
    return delivered


def migrate(args, config: Config):
    """Apply pending schema migrations to the configured database."""
    upgrade_database(config.DATABASE_URL, revision=args.revision)
    print(f"Database at revision {current_revision(config.DATABASE_URL)}")


def add_channel(args, config: Config):
    """
    Add a channel for a feed URL and sync it once.

    An already known feed URL is synced again instead of being added twice.
    Exits with status 1 when the sync fails; the channel row is kept so a
    later `sync` can retry it.
    """
    logger.info(f"Adding channel from: {args.url}")
    repository = _open_repository(config)

    try:
        channel = repository.get_channel_by_link(args.url)
        if channel is None:
            channel = repository.create_channel(link=args.url)
            print(f"Added channel {channel.id}")
        else:
            print(f"Channel {channel.id} already exists for this feed")

        if not _run_sync(repository, config, channel.id, channel.link):
            sys.exit(1)
    finally:
        repository.close()


def remove_channel(args, config: Config):
    """Delete a channel with its episodes and listening progress."""
    repository = _open_repository(config)
    try:
        if not repository.delete_channel(args.channel_id):
            raise NotFoundError("Channel not found", channel_id=args.channel_id)
        print(f"Removed channel {args.channel_id}")
    finally:
        repository.close()


def sync_channel(args, config: Config):
    """Fetch a channel's feed and replace its stored episodes."""
    repository = _open_repository(config)
    try:
        channel = _require_channel(repository, args.channel_id)
        if not _run_sync(repository, config, channel.id, channel.link):
            sys.exit(1)
    finally:
        repository.close()


def list_channels(args, config: Config):
    repository = _open_repository(config)
    try:
        channels = [ChannelSummary.model_validate(c) for c in repository.list_channels()]
        if not channels:
            print("No channels. Add one with `librecast add <url>` or run `librecast seed`.")
            return

        print(f"\n{'ID':<6} {'Episodes':<10} Title")
        print("-" * 60)
        for channel in channels:
            count = repository.count_episodes(channel.id)
            print(f"{channel.id:<6} {count:<10} {channel.display_title}")
            print(f"{'':<17} {channel.link}")
    finally:
        repository.close()


def _format_progress(episode: EpisodeListing) -> str:
    state = episode.listening_state
    if state is None:
        return ""
    if state.finished:
        return "[finished]"
    return f"[at {format_seconds(state.position_seconds)}]"


def list_episodes(args, config: Config):
    """List a channel's episodes newest first, with listening progress."""
    repository = _open_repository(config)
    try:
        _require_channel(repository, args.channel_id)
        rows = repository.list_episodes_with_state(args.channel_id)
        if not rows:
            print(f"No episodes stored for channel {args.channel_id}. Run `librecast sync {args.channel_id}`.")
            return

        for episode, state in rows:
            listing = EpisodeListing.from_row(episode, state)
            published = listing.pub_date.strftime("%Y-%m-%d") if listing.pub_date else "----------"
            print(f"{listing.ordering:>4}  {published}  {listing.display_title} {_format_progress(listing)}".rstrip())
            if args.urls:
                print(f"{'':<18}{listing.enclosure_url}")
    finally:
        repository.close()


def set_position(args, config: Config):
    """Record a playback position for an episode."""
    repository = _open_repository(config)
    try:
        _require_channel(repository, args.channel_id)
        ListeningStateStore(repository).upsert_position(
            args.channel_id, args.enclosure_url, args.seconds
        )
        print(f"Saved position {format_seconds(args.seconds)}")
    finally:
        repository.close()


def mark_finished(args, config: Config):
    """Mark an episode finished so it replays from the start."""
    repository = _open_repository(config)
    try:
        _require_channel(repository, args.channel_id)
        store = ListeningStateStore(repository)
        store.mark_finished(args.channel_id, args.enclosure_url)
        if store.get(args.channel_id, args.enclosure_url) is None:
            print("Episode has no listening progress yet, nothing to mark")
        else:
            print("Marked finished")
    finally:
        repository.close()


def seed_channels(args, config: Config):
    """Add the default channels that are not present yet."""
    repository = _open_repository(config)
    try:
        added = 0
        for title, link in DEFAULT_CHANNELS:
            if repository.get_channel_by_link(link) is not None:
                continue
            channel = repository.create_channel(link=link, title=title)
            print(f"Added channel {channel.id}: {title}")
            added += 1
        print(f"\nSeed complete: {added} added")
    finally:
        repository.close()


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = get_base_parser()
    parser.formatter_class = argparse.RawDescriptionHelpFormatter
    add_log_level_argument(parser)

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    migrate_parser = subparsers.add_parser("migrate", help="Apply database migrations")
    migrate_parser.add_argument(
        "--revision",
        default="head",
        help="Target revision (default: head)",
    )

    add_parser = subparsers.add_parser("add", help="Add a channel from a feed URL and sync it")
    add_parser.add_argument("url", help="RSS feed URL")

    remove_parser = subparsers.add_parser(
        "remove", help="Remove a channel with its episodes and progress"
    )
    add_channel_id_argument(remove_parser)

    subparsers.add_parser("list", help="List channels")

    sync_parser = subparsers.add_parser("sync", help="Sync a channel's episodes")
    add_channel_id_argument(sync_parser)

    episodes_parser = subparsers.add_parser("episodes", help="List a channel's episodes")
    add_channel_id_argument(episodes_parser)
    episodes_parser.add_argument(
        "--urls",
        action="store_true",
        help="Also print enclosure URLs",
    )

    position_parser = subparsers.add_parser("position", help="Save a playback position")
    add_channel_id_argument(position_parser)
    add_enclosure_argument(position_parser)
    position_parser.add_argument("seconds", type=float, help="Position in seconds")

    finished_parser = subparsers.add_parser("finished", help="Mark an episode finished")
    add_channel_id_argument(finished_parser)
    add_enclosure_argument(finished_parser)

    subparsers.add_parser("seed", help="Add the default channels")

    return parser


def main(argv: Optional[Sequence[str]] = None):
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Load configuration
    config = Config(env_file=args.env_file)

    # --log-level overrides LOG_LEVEL
    log_level = args.log_level or config.LOG_LEVEL
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.debug(f"Configuration: {config.describe()}")

    # Route to appropriate command
    commands = {
        "migrate": migrate,
        "add": add_channel,
        "remove": remove_channel,
        "list": list_channels,
        "sync": sync_channel,
        "episodes": list_episodes,
        "position": set_position,
        "finished": mark_finished,
        "seed": seed_channels,
    }

    command_func = commands.get(args.command)
    if command_func is None:
        parser.print_help()
        sys.exit(1)

    try:
        command_func(args, config)
    except (LibrecastError, ValueError) as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
