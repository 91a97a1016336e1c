"""Apply the bundled alembic migrations without an alembic.ini file."""

import logging
from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config as AlembicConfig
from alembic.runtime.migration import MigrationContext
from sqlalchemy import create_engine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent.parent / "migrations"


def build_alembic_config(database_url: str) -> AlembicConfig:
    """Build an in-memory alembic configuration pointing at the bundled migrations."""
    alembic_config = AlembicConfig()
    alembic_config.set_main_option("script_location", str(MIGRATIONS_DIR))
    # configparser interpolation treats '%' specially
    alembic_config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))
    return alembic_config


def upgrade_database(database_url: str, revision: str = "head") -> None:
    """
    Upgrade the database schema to `revision`.

    Parameters:
        database_url (str): SQLAlchemy database URL.
        revision (str): Target revision, `head` by default.
    """
    logger.info(f"Upgrading database schema to {revision}")
    command.upgrade(build_alembic_config(database_url), revision)


def current_revision(database_url: str) -> Optional[str]:
    """Return the revision the database is stamped with, or None for an unmigrated database."""
    engine = create_engine(database_url)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    finally:
        engine.dispose()
