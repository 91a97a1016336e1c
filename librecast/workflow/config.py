"""Configuration for the sync coordinator.

Provides environment-based configuration for worker count and insert batch size.
"""

import os
from dataclasses import dataclass
from typing import Optional


def _get_int_env(
    name: str,
    default: int,
    min_val: Optional[int] = None,
    max_val: Optional[int] = None,
) -> int:
    """Parse an integer from an environment variable with validation.

    Args:
        name: Environment variable name.
        default: Default value if env var is not set.
        min_val: Minimum allowed value (inclusive), or None for no minimum.
        max_val: Maximum allowed value (inclusive), or None for no maximum.

    Returns:
        The parsed and validated integer value.

    Raises:
        ValueError: If the value cannot be parsed as an integer or is out of range.
    """
    raw = os.getenv(name)
    if raw is None:
        return default

    try:
        value = int(raw)
    except ValueError:
        raise ValueError(
            f"Invalid value for {name}: '{raw}' is not a valid integer"
        )

    if min_val is not None and value < min_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be >= {min_val}"
        )

    if max_val is not None and value > max_val:
        raise ValueError(
            f"Invalid value for {name}: {value} must be <= {max_val}"
        )

    return value


@dataclass
class SyncConfig:
    """Configuration for background feed synchronization.

    All settings can be overridden via environment variables.
    """

    max_workers: int = 4  # Background threads running refreshes
    batch_size: int = 500  # Episode rows per INSERT statement

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Create configuration from environment variables.

        Returns:
            SyncConfig instance with values from environment or defaults.

        Raises:
            ValueError: If any environment variable has an invalid value.
        """
        return cls(
            max_workers=_get_int_env("SYNC_MAX_WORKERS", 4, min_val=1, max_val=64),
            batch_size=_get_int_env("SYNC_BATCH_SIZE", 500, min_val=1),
        )
