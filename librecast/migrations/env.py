"""Alembic environment configuration for database migrations."""

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from librecast.db.models import Base

# this is the Alembic Config object, which provides
# access to the values within the .ini file in use.
config = context.config

# Interpret the config file for Python logging.
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# target metadata for 'autogenerate' support
target_metadata = Base.metadata


def get_url():
    """
    Determine the database URL for Alembic by checking configuration and environment variables.

    An explicit 'sqlalchemy.url' option (set by `upgrade_database`) wins; otherwise ALEMBIC_DATABASE_URL, then DATABASE_URL is used.

    Returns:
        str: The resolved database URL.
    """
    url = config.get_main_option("sqlalchemy.url")
    if url:
        return url
    return os.getenv("ALEMBIC_DATABASE_URL") or os.getenv("DATABASE_URL")


def run_migrations_offline() -> None:
    """
    Execute database migrations using a URL without creating a live Engine.
    """
    url = get_url()
    context.configure(
        url=url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        render_as_batch=url.startswith("sqlite"),
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """
    Run migrations using a live database connection.

    Configure an Engine from the Alembic configuration, open a connection, configure the Alembic context with that connection and the module's target metadata, and execute migrations inside a transaction.
    """
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()

    connectable = engine_from_config(
        configuration,
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
