"""Database module for channel, episode and listening state persistence.

Provides:
- SQLAlchemy ORM models (Channel, Episode, ListeningState)
- Repository interface and implementation
- Factory function for creating repositories
- Migration runner
"""

from .factory import create_repository
from .migrate import upgrade_database
from .models import Base, Channel, Episode, ListeningState
from .repository import ChannelRepositoryInterface, SQLAlchemyChannelRepository

__all__ = [
    "Base",
    "Channel",
    "Episode",
    "ListeningState",
    "ChannelRepositoryInterface",
    "SQLAlchemyChannelRepository",
    "create_repository",
    "upgrade_database",
]
