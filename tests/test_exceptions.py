"""Tests for the exception hierarchy."""

import pytest

from librecast.exceptions import (
    FetchError,
    LibrecastError,
    NotFoundError,
    PersistenceError,
    PlaybackError,
)


class TestLibrecastError:
    def test_message_only(self):
        error = LibrecastError("Something failed")

        assert str(error) == "Something failed"
        assert error.message == "Something failed"
        assert error.context == {}

    def test_context_in_str(self):
        error = FetchError("Failed to fetch feed", url="https://e.com/feed", status=503)

        assert str(error) == "Failed to fetch feed (url=https://e.com/feed, status=503)"
        assert error.context["status"] == 503

    @pytest.mark.parametrize("cls", [FetchError, PersistenceError, NotFoundError, PlaybackError])
    def test_subclasses(self, cls):
        """Test every application error can be caught as LibrecastError."""
        with pytest.raises(LibrecastError):
            raise cls("x")
