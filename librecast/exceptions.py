"""
Custom exception classes for Librecast.

Application errors derive from LibrecastError so callers can catch them
without also catching KeyboardInterrupt or SystemExit.

Example:
    try:
        parsed = feed_parser.fetch_and_parse(url)
    except FetchError as e:
        logger.error(f"Fetch failed: {e.message}")
"""


class LibrecastError(Exception):
    """
    Base exception for all Librecast application errors.

    Attributes:
        message: Human-readable error message
        context: Dict of additional error context (url, channel_id, ...)

    Example:
        raise LibrecastError("Failed to sync channel", channel_id=3)
    """

    def __init__(self, message: str, **context):
        """
        Initialize LibrecastError.

        Args:
            message: Human-readable error message
            **context: Optional keyword arguments for error context
        """
        super().__init__(message)
        self.message = message
        self.context = context

    def __str__(self) -> str:
        if not self.context:
            return self.message
        context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({context_str})"


class FetchError(LibrecastError):
    """
    A feed could not be fetched or parsed.

    Network failures, non-success HTTP statuses and unparseable bodies all
    collapse into this one error.
    """

    pass


class PersistenceError(LibrecastError):
    """A database operation failed (constraint violation, I/O, ...)."""

    pass


class NotFoundError(LibrecastError):
    """A required row does not exist."""

    pass


class PlaybackError(LibrecastError):
    """The audio engine could not open or control a stream."""

    pass
