"""Database factory for creating repository instances.

Detects the database type from the URL and configures the engine for
SQLite (the default local database) or PostgreSQL.
"""

import logging
import os
from typing import Optional

from ..config import default_database_url
from .repository import ChannelRepositoryInterface, SQLAlchemyChannelRepository

logger = logging.getLogger(__name__)


def create_repository(
    database_url: Optional[str] = None,
    pool_size: int = 5,
    max_overflow: int = 10,
    echo: bool = False,
    create_tables: bool = False,
) -> ChannelRepositoryInterface:
    """
    Create a ChannelRepositoryInterface configured from the provided or discovered database URL.

    If `database_url` is not provided, it is read from the `DATABASE_URL` environment variable; if that is unset, the same home-directory SQLite default as Config is used. Logs the chosen database type and hides credentials when present. Pool settings apply to PostgreSQL and are ignored for SQLite.

    Parameters:
        database_url (Optional[str]): SQLAlchemy database URL to use; if None the environment or default is used.
        pool_size (int): Connection pool size for PostgreSQL; ignored for SQLite.
        max_overflow (int): Maximum overflow connections for PostgreSQL; ignored for SQLite.
        echo (bool): If true, enable SQL statement logging.
        create_tables (bool): If true, create missing tables directly from the ORM metadata instead of relying on migrations.

    Returns:
        ChannelRepositoryInterface: A repository instance backed by the resolved database URL.
    """
    if database_url is None:
        database_url = os.getenv("DATABASE_URL") or default_database_url()

    # Log database type (without credentials)
    if "://" in database_url:
        db_type = database_url.split("://")[0]
        if "@" in database_url:
            db_location = database_url.split("@")[-1]
            logger.info(f"Creating {db_type} repository: ...@{db_location}")
        else:
            logger.info(f"Creating {db_type} repository: {database_url}")
    else:
        logger.info(f"Creating repository with URL: {database_url}")

    repository = SQLAlchemyChannelRepository(
        database_url=database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        echo=echo,
    )
    if create_tables:
        repository.create_tables()
    return repository

