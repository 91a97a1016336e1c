import os

from dotenv import load_dotenv


def default_database_url() -> str:
    """SQLite database in the user's home directory."""
    home = os.path.expanduser("~")
    return f"sqlite:///{os.path.join(home, '.librecast.db')}"


class Config:
    def __init__(self, env_file=None):
        """
        Initialize configuration by loading environment variables and setting default attributes.

        Loads environment variables from the provided .env file path when `env_file` is given; otherwise loads from the default environment. After loading, sets the database, feed fetching and logging attributes using environment values with sensible defaults.

        Parameters:
            env_file (str | None): Optional path to a .env file to load environment variables from.
        """
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        # Database configuration
        self.DATABASE_URL = os.getenv("DATABASE_URL", default_database_url())
        self.DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
        self.DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
        self.DB_ECHO = os.getenv("DB_ECHO", "false").lower() == "true"

        # Feed fetching
        self.FEED_USER_AGENT = os.getenv("FEED_USER_AGENT", "") or None
        self.FEED_TIMEOUT_SECONDS = float(os.getenv("FEED_TIMEOUT_SECONDS", "30"))
        if self.FEED_TIMEOUT_SECONDS <= 0:
            raise ValueError(
                f"FEED_TIMEOUT_SECONDS must be positive, got {self.FEED_TIMEOUT_SECONDS}"
            )

        # Logging
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    def describe(self) -> str:
        """Return a one-line summary of the effective settings, credentials hidden."""
        db_location = self.DATABASE_URL.split("@")[-1]
        return (
            f"database={db_location}, feed_timeout={self.FEED_TIMEOUT_SECONDS}s, "
            f"log_level={self.LOG_LEVEL}"
        )
