"""Tests for the bundled alembic migrations."""

from sqlalchemy import create_engine, inspect

from librecast.db.factory import create_repository
from librecast.db.migrate import MIGRATIONS_DIR, build_alembic_config, current_revision, upgrade_database


class TestMigrations:
    def test_fresh_database_has_no_revision(self, database_url):
        assert current_revision(database_url) is None

    def test_upgrade_creates_schema(self, database_url):
        upgrade_database(database_url)

        engine = create_engine(database_url)
        try:
            inspector = inspect(engine)
            tables = set(inspector.get_table_names())
            episode_uniques = inspector.get_unique_constraints("episodes")
            state_columns = {c["name"] for c in inspector.get_columns("listening_states")}
        finally:
            engine.dispose()

        assert {"channels", "episodes", "listening_states"} <= tables
        assert any(
            set(u["column_names"]) == {"channel_id", "enclosure_url"} for u in episode_uniques
        )
        assert {"channel_id", "enclosure_url", "position_seconds", "finished"} <= state_columns
        assert current_revision(database_url) == "001"

    def test_upgrade_is_repeatable(self, database_url):
        upgrade_database(database_url)
        upgrade_database(database_url)

        assert current_revision(database_url) == "001"

    def test_migrated_schema_works_with_repository(self, database_url):
        upgrade_database(database_url)
        repository = create_repository(database_url)
        try:
            channel = repository.create_channel(link="https://e.com/feed")
            repository.replace_episodes(channel.id, [{"enclosure_url": "https://e.com/1.mp3", "ordering": 1}])
            repository.upsert_listening_position(channel.id, "https://e.com/1.mp3", 5.0)

            [(episode, state)] = repository.list_episodes_with_state(channel.id)
        finally:
            repository.close()

        assert episode.ordering == 1
        assert state.position_seconds == 5.0

    def test_config_points_at_bundled_scripts(self):
        config = build_alembic_config("sqlite:///x%20y.db")

        assert config.get_main_option("script_location") == str(MIGRATIONS_DIR)
        assert config.get_main_option("sqlalchemy.url") == "sqlite:///x%20y.db"
        assert (MIGRATIONS_DIR / "env.py").exists()
