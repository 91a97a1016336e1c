"""SQLAlchemy ORM models for channels, episodes and listening state."""

from datetime import UTC, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class Channel(Base):
    """Podcast channel.

    Identified by its feed URL (`link`). Created on first sync of a feed URL
    or pre-seeded; the sync path never deletes channels.
    """

    __tablename__ = "channels"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[Optional[str]] = mapped_column(String(512))
    link: Mapped[Optional[str]] = mapped_column(String(2048), unique=True)
    description: Mapped[Optional[str]] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow
    )

    # Relationships
    episodes: Mapped[List["Episode"]] = relationship(
        "Episode", back_populates="channel", cascade="all, delete-orphan"
    )
    listening_states: Mapped[List["ListeningState"]] = relationship(
        "ListeningState", back_populates="channel", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, title={self.title!r})>"


class Episode(Base):
    """Episode of a channel, as seen in the most recent feed fetch.

    `(channel_id, enclosure_url)` is the identity; `ordering` is the 1-based
    position within the fetched feed and is rewritten on every sync.
    """

    __tablename__ = "episodes"

    # Surrogate key, reassigned on every sync
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    enclosure_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    ordering: Mapped[int] = mapped_column(Integer, nullable=False)

    # Metadata from the feed item
    title: Mapped[Optional[str]] = mapped_column(String(512))
    link: Mapped[Optional[str]] = mapped_column(String(2048))
    source: Mapped[Optional[str]] = mapped_column(String(2048))
    description: Mapped[Optional[str]] = mapped_column(Text)
    guid: Mapped[Optional[str]] = mapped_column(String(2048))
    pub_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    channel: Mapped["Channel"] = relationship("Channel", back_populates="episodes")

    __table_args__ = (
        UniqueConstraint("channel_id", "enclosure_url", name="uq_episode_channel_enclosure"),
        Index("ix_episodes_channel_id", "channel_id"),
    )

    def __repr__(self) -> str:
        return f"<Episode(channel_id={self.channel_id}, ordering={self.ordering}, title={self.title!r})>"


class ListeningState(Base):
    """Playback progress for one episode identity.

    Keyed by `(channel_id, enclosure_url)` rather than by episode row, so a
    row outlives the episode it refers to when a later sync drops it.
    """

    __tablename__ = "listening_states"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    channel_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("channels.id", ondelete="CASCADE"), nullable=False
    )
    enclosure_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    position_seconds: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    finished: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=_utcnow, onupdate=_utcnow
    )

    channel: Mapped["Channel"] = relationship("Channel", back_populates="listening_states")

    __table_args__ = (
        UniqueConstraint(
            "channel_id", "enclosure_url", name="uq_listening_state_channel_enclosure"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<ListeningState(channel_id={self.channel_id}, "
            f"position={self.position_seconds}, finished={self.finished})>"
        )
