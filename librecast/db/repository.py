"""Repository pattern implementation for channel, episode and listening state persistence.

Provides an abstract interface and SQLAlchemy implementation for database operations.
Supports both SQLite (the default local database) and PostgreSQL.
"""

import functools
import logging
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import and_, create_engine, delete, event, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..exceptions import PersistenceError
from .models import Base, Channel, Episode, ListeningState

logger = logging.getLogger(__name__)

# Rows per INSERT statement when replacing a channel's episodes
DEFAULT_BATCH_SIZE = 500

# Seconds a SQLite connection waits on a locked database before failing
SQLITE_BUSY_TIMEOUT = 30

EPISODE_COLUMNS = (
    "enclosure_url",
    "ordering",
    "title",
    "link",
    "source",
    "description",
    "guid",
    "pub_date",
)


def _translate_errors(method):
    """Re-raise SQLAlchemy errors from a repository method as PersistenceError."""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Database error in {method.__name__}: {e}") from e

    return wrapper


class ChannelRepositoryInterface(ABC):
    """Abstract interface for channel, episode and listening state persistence.

    Implementations must support both SQLite and PostgreSQL backends.
    """

    # --- Channel Operations ---

    @abstractmethod
    def create_channel(
        self,
        link: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        channel_id: Optional[int] = None,
    ) -> Channel:
        """
        Create and persist a channel for the given feed URL.

        Parameters:
            link (str): Feed URL; unique across channels.
            title (Optional[str]): Display title.
            description (Optional[str]): Channel description.
            channel_id (Optional[int]): Explicit primary key; generated when omitted.

        Returns:
            Channel: The persisted channel.
        """
        pass

    @abstractmethod
    def get_channel(self, channel_id: int) -> Optional[Channel]:
        """
        Retrieve a channel by its identifier.

        Returns:
            Channel if a channel with the given ID exists, `None` otherwise.
        """
        pass

    @abstractmethod
    def get_channel_by_link(self, link: str) -> Optional[Channel]:
        """
        Retrieve the channel whose feed URL equals `link`.

        Returns:
            The matching `Channel` if found, `None` otherwise.
        """
        pass

    @abstractmethod
    def list_channels(self) -> List[Channel]:
        """
        Return all channels ordered by ID.
        """
        pass

    @abstractmethod
    def update_channel(self, channel_id: int, **kwargs) -> Optional[Channel]:
        """
        Update attributes of an existing channel.

        Parameters:
            channel_id (int): The channel's primary key.
            **kwargs: Channel fields to update (`title`, `link`, `description`).

        Returns:
            Optional[Channel]: The updated channel, `None` if no channel has `channel_id`.
        """
        pass

    @abstractmethod
    def delete_channel(self, channel_id: int) -> bool:
        """
        Delete a channel together with its episodes and listening states.

        This is an administrative action; synchronization never calls it.

        Returns:
            bool: `True` if a channel was deleted, `False` if none had `channel_id`.
        """
        pass

    # --- Episode Operations ---

    @abstractmethod
    def replace_episodes(
        self,
        channel_id: int,
        episodes: Sequence[Dict[str, Any]],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        """
        Atomically replace every stored episode of a channel.

        Deletes all episodes with `channel_id` and inserts `episodes` in chunks
        of `batch_size`, all inside one transaction. On any failure nothing
        changes.

        Parameters:
            channel_id (int): Channel whose episode set is replaced.
            episodes (Sequence[dict]): Episode column values (see EPISODE_COLUMNS).
            batch_size (int): Maximum rows per INSERT statement.

        Returns:
            int: Number of episodes inserted.
        """
        pass

    @abstractmethod
    def list_episodes(self, channel_id: int) -> List[Episode]:
        """
        List a channel's episodes, newest first.

        Ordered by publish date descending (missing dates last) then by `ordering`.
        """
        pass

    @abstractmethod
    def list_episodes_with_state(
        self, channel_id: int
    ) -> List[Tuple[Episode, Optional[ListeningState]]]:
        """
        List a channel's episodes each joined to at most one listening state row.

        Returns:
            List of `(episode, listening_state)` pairs in `list_episodes` order;
            `listening_state` is `None` for never-played episodes.
        """
        pass

    @abstractmethod
    def count_episodes(self, channel_id: int) -> int:
        """Return the number of stored episodes for a channel."""
        pass

    # --- Listening State Operations ---

    @abstractmethod
    def get_listening_state(
        self, channel_id: int, enclosure_url: str
    ) -> Optional[ListeningState]:
        """
        Retrieve the listening state for an episode identity.

        Returns:
            The ListeningState if one was ever written, `None` otherwise.
        """
        pass

    @abstractmethod
    def upsert_listening_position(
        self, channel_id: int, enclosure_url: str, position_seconds: float
    ) -> ListeningState:
        """
        Store a playback position and clear the finished flag.

        Updates the existing row or creates one. Never creates a duplicate row
        for the same `(channel_id, enclosure_url)`.
        """
        pass

    @abstractmethod
    def mark_listening_finished(self, channel_id: int, enclosure_url: str) -> bool:
        """
        Mark an episode finished and reset its position to 0.

        Returns:
            bool: `True` if a row was updated, `False` if there was no row (no row is created).
        """
        pass

    # --- Lifecycle ---

    @abstractmethod
    def create_tables(self) -> None:
        """Create all tables that do not exist yet."""
        pass

    @abstractmethod
    def close(self) -> None:
        """
        Close and release all database connections and engine resources used by the repository.
        """
        pass


class SQLAlchemyChannelRepository(ChannelRepositoryInterface):
    """SQLAlchemy-based implementation of the channel repository.

    Each public method runs in its own short-lived session so the repository
    can be shared between the foreground loop and background sync threads.
    """

    def __init__(
        self,
        database_url: str,
        pool_size: int = 5,
        max_overflow: int = 10,
        echo: bool = False,
    ):
        """
        Initialize the repository and configure its SQLAlchemy engine and session factory.

        Parameters:
            database_url (str): SQLAlchemy-compatible database URL.
            pool_size (int): Connection pool size for non-SQLite databases.
            max_overflow (int): Maximum overflow connections for non-SQLite databases.
            echo (bool): If true, enable SQLAlchemy SQL statement logging.
        """
        self.database_url = database_url

        # SQLite doesn't support connection pooling
        if database_url.startswith("sqlite"):
            self.engine = create_engine(
                database_url,
                echo=echo,
                connect_args={
                    "check_same_thread": False,
                    "timeout": SQLITE_BUSY_TIMEOUT,
                },
            )
            self._enable_sqlite_foreign_keys()
        else:
            self.engine = create_engine(
                database_url,
                pool_size=pool_size,
                max_overflow=max_overflow,
                echo=echo,
            )

        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

        logger.info(f"Database initialized: {database_url.split('@')[-1] if '@' in database_url else database_url}")

    def _enable_sqlite_foreign_keys(self) -> None:
        """Enable foreign key enforcement on every SQLite connection."""

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_conn, _connection_record) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    def _get_session(self) -> Session:
        """
        Obtain a new SQLAlchemy database session from the repository's session factory.
        """
        return self.SessionLocal()

    # --- Channel Operations ---

    @_translate_errors
    def create_channel(
        self,
        link: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        channel_id: Optional[int] = None,
    ) -> Channel:
        with self._get_session() as session:
            channel = Channel(link=link, title=title, description=description)
            if channel_id is not None:
                channel.id = channel_id
            session.add(channel)
            session.commit()
            session.refresh(channel)
            logger.info(f"Created channel: {title or link} ({channel.id})")
            return channel

    @_translate_errors
    def get_channel(self, channel_id: int) -> Optional[Channel]:
        with self._get_session() as session:
            return session.get(Channel, channel_id)

    @_translate_errors
    def get_channel_by_link(self, link: str) -> Optional[Channel]:
        with self._get_session() as session:
            stmt = select(Channel).where(Channel.link == link)
            return session.scalar(stmt)

    @_translate_errors
    def list_channels(self) -> List[Channel]:
        with self._get_session() as session:
            stmt = select(Channel).order_by(Channel.id)
            return list(session.scalars(stmt).all())

    @_translate_errors
    def update_channel(self, channel_id: int, **kwargs) -> Optional[Channel]:
        """
        Update attributes of an existing channel.

        Only attributes that exist on the Channel model are set from `kwargs`.
        """
        with self._get_session() as session:
            channel = session.get(Channel, channel_id)
            if channel:
                for key, value in kwargs.items():
                    if hasattr(channel, key):
                        setattr(channel, key, value)
                channel.updated_at = datetime.now(UTC)
                session.commit()
                session.refresh(channel)
                logger.debug(f"Updated channel {channel_id}: {list(kwargs.keys())}")
            return channel

    @_translate_errors
    def delete_channel(self, channel_id: int) -> bool:
        with self._get_session() as session:
            channel = session.get(Channel, channel_id)
            if not channel:
                return False

            session.delete(channel)
            session.commit()
            logger.info(f"Deleted channel: {channel.title} ({channel_id})")
            return True

    # --- Episode Operations ---

    @_translate_errors
    def replace_episodes(
        self,
        channel_id: int,
        episodes: Sequence[Dict[str, Any]],
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> int:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")

        rows = [
            {"channel_id": channel_id, **{key: episode.get(key) for key in EPISODE_COLUMNS}}
            for episode in episodes
        ]

        with self._get_session() as session, session.begin():
            deleted = session.execute(
                delete(Episode).where(Episode.channel_id == channel_id)
            ).rowcount
            for start in range(0, len(rows), batch_size):
                session.execute(insert(Episode), rows[start:start + batch_size])

        logger.debug(
            f"Replaced episodes for channel {channel_id}: "
            f"{deleted} removed, {len(rows)} inserted"
        )
        return len(rows)

    def _episode_order(self):
        return (
            Episode.pub_date.is_(None),
            Episode.pub_date.desc(),
            Episode.ordering,
        )

    @_translate_errors
    def list_episodes(self, channel_id: int) -> List[Episode]:
        with self._get_session() as session:
            stmt = (
                select(Episode)
                .where(Episode.channel_id == channel_id)
                .order_by(*self._episode_order())
            )
            return list(session.scalars(stmt).all())

    @_translate_errors
    def list_episodes_with_state(
        self, channel_id: int
    ) -> List[Tuple[Episode, Optional[ListeningState]]]:
        with self._get_session() as session:
            stmt = (
                select(Episode, ListeningState)
                .outerjoin(
                    ListeningState,
                    and_(
                        ListeningState.channel_id == Episode.channel_id,
                        ListeningState.enclosure_url == Episode.enclosure_url,
                    ),
                )
                .where(Episode.channel_id == channel_id)
                .order_by(*self._episode_order())
            )
            return [(episode, state) for episode, state in session.execute(stmt).all()]

    @_translate_errors
    def count_episodes(self, channel_id: int) -> int:
        with self._get_session() as session:
            stmt = select(func.count(Episode.id)).where(Episode.channel_id == channel_id)
            return session.scalar(stmt) or 0

    # --- Listening State Operations ---

    def _listening_state_filter(self, channel_id: int, enclosure_url: str):
        return and_(
            ListeningState.channel_id == channel_id,
            ListeningState.enclosure_url == enclosure_url,
        )

    @_translate_errors
    def get_listening_state(
        self, channel_id: int, enclosure_url: str
    ) -> Optional[ListeningState]:
        with self._get_session() as session:
            stmt = select(ListeningState).where(
                self._listening_state_filter(channel_id, enclosure_url)
            )
            return session.scalar(stmt)

    def _write_position(
        self, channel_id: int, enclosure_url: str, position_seconds: float
    ) -> None:
        with self._get_session() as session, session.begin():
            result = session.execute(
                update(ListeningState)
                .where(self._listening_state_filter(channel_id, enclosure_url))
                .values(
                    position_seconds=position_seconds,
                    finished=False,
                    updated_at=datetime.now(UTC),
                )
            )
            if result.rowcount == 0:
                session.add(
                    ListeningState(
                        channel_id=channel_id,
                        enclosure_url=enclosure_url,
                        position_seconds=position_seconds,
                        finished=False,
                    )
                )

    @_translate_errors
    def upsert_listening_position(
        self, channel_id: int, enclosure_url: str, position_seconds: float
    ) -> ListeningState:
        """
        Store a playback position and clear the finished flag.

        Uses optimistic creation with IntegrityError handling: when another
        writer inserts the same row first, the write is retried as an update.
        """
        try:
            self._write_position(channel_id, enclosure_url, position_seconds)
        except IntegrityError:
            # Another writer created the row; the retry takes the update path
            self._write_position(channel_id, enclosure_url, position_seconds)

        return self.get_listening_state(channel_id, enclosure_url)

    @_translate_errors
    def mark_listening_finished(self, channel_id: int, enclosure_url: str) -> bool:
        with self._get_session() as session, session.begin():
            result = session.execute(
                update(ListeningState)
                .where(self._listening_state_filter(channel_id, enclosure_url))
                .values(
                    finished=True,
                    position_seconds=0.0,
                    updated_at=datetime.now(UTC),
                )
            )
            return result.rowcount > 0

    # --- Lifecycle ---

    @_translate_errors
    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)

    def close(self) -> None:
        """
        Dispose the SQLAlchemy engine and release database connections and resources.
        """
        self.engine.dispose()
        logger.info("Database connection closed")
