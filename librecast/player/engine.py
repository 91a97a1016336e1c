"""Playback engine handle shared between the UI thread and the audio thread.

The decoder itself lives outside this package; `AudioEngine` is the seam it
plugs into. `PlaybackController` wraps one engine behind a reader/writer
lock: position queries for rendering share the lock, commands hold it
exclusively, and every lock scope covers exactly one engine call.
"""

import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

from ..exceptions import PlaybackError

logger = logging.getLogger(__name__)

# Step used by seek_forward/seek_backward in the UI
SEEK_STEP_SECONDS = 10.0

# Step used by volume_up/volume_down, volume ranges over [0.0, 1.0]
VOLUME_STEP = 0.1


class AudioEngine(ABC):
    """Interface of the audio decoder/output."""

    @abstractmethod
    def open(self, url: str) -> None:
        """Open a stream and start playing it.

        Raises:
            PlaybackError: If the stream cannot be opened.
        """
        pass

    @abstractmethod
    def play(self) -> None:
        pass

    @abstractmethod
    def pause(self) -> None:
        pass

    @abstractmethod
    def seek(self, seconds: float) -> None:
        """Move to an absolute position."""
        pass

    @abstractmethod
    def seek_relative(self, delta: float) -> None:
        """Move by `delta` seconds, negative values rewind."""
        pass

    @abstractmethod
    def current_position(self) -> float:
        pass

    @abstractmethod
    def duration(self) -> float:
        """Length of the open stream in seconds, 0 when unknown."""
        pass

    @abstractmethod
    def is_paused(self) -> bool:
        pass

    @abstractmethod
    def last_error(self) -> Optional[str]:
        pass

    @abstractmethod
    def volume(self) -> float:
        pass

    @abstractmethod
    def set_volume(self, value: float) -> None:
        pass


class ReadWriteLock:
    """Many concurrent readers or one writer.

    Writers waiting for the lock block new readers so a steady stream of
    render reads cannot starve a command.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()


@dataclass(frozen=True)
class PlaybackSnapshot:
    """Everything the timeline widget draws, read under one shared lock."""

    url: Optional[str]
    position: float
    duration: float
    paused: bool
    volume: float
    error: Optional[str]

    @property
    def progress(self) -> float:
        """Fraction played in [0, 1]; 0 when the duration is unknown."""
        if self.duration <= 0:
            return 0.0
        return min(max(self.position / self.duration, 0.0), 1.0)


def format_seconds(seconds: float) -> str:
    """Render seconds as H:MM:SS, or M:SS under an hour."""
    total = max(int(seconds), 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


class PlaybackController:
    """Owned handle to one AudioEngine, passed explicitly to whoever needs it.

    Example:
        playback = PlaybackController(engine)
        playback.open(episode.enclosure_url)
        playback.seek(episode.resume_position)
    """

    def __init__(self, engine: AudioEngine):
        self._engine = engine
        self._lock = ReadWriteLock()
        self._url: Optional[str] = None

    # --- Reads (shared lock) ---

    @property
    def url(self) -> Optional[str]:
        with self._lock.read_locked():
            return self._url

    def position(self) -> float:
        with self._lock.read_locked():
            return self._engine.current_position()

    def duration(self) -> float:
        with self._lock.read_locked():
            return self._engine.duration()

    def is_paused(self) -> bool:
        with self._lock.read_locked():
            return self._engine.is_paused()

    def last_error(self) -> Optional[str]:
        with self._lock.read_locked():
            return self._engine.last_error()

    def volume(self) -> float:
        with self._lock.read_locked():
            return self._engine.volume()

    def snapshot(self) -> PlaybackSnapshot:
        with self._lock.read_locked():
            return PlaybackSnapshot(
                url=self._url,
                position=self._engine.current_position(),
                duration=self._engine.duration(),
                paused=self._engine.is_paused(),
                volume=self._engine.volume(),
                error=self._engine.last_error(),
            )

    # --- Commands (exclusive lock) ---

    def open(self, url: str) -> None:
        """Open and start a stream.

        Raises:
            PlaybackError: If the engine fails to open it.
        """
        with self._lock.write_locked():
            try:
                self._engine.open(url)
            except PlaybackError:
                self._url = None
                raise
            except Exception as e:
                self._url = None
                raise PlaybackError(f"Failed to open stream: {e}", url=url) from e
            self._url = url
        logger.info(f"Opened stream {url}")

    def pause(self) -> None:
        with self._lock.write_locked():
            self._engine.pause()

    def resume(self) -> None:
        with self._lock.write_locked():
            self._engine.play()

    def toggle_pause(self) -> bool:
        """Pause when playing, resume when paused. Returns True if now paused."""
        with self._lock.write_locked():
            if self._engine.is_paused():
                self._engine.play()
                return False
            self._engine.pause()
            return True

    def seek(self, seconds: float) -> None:
        with self._lock.write_locked():
            self._engine.seek(max(float(seconds), 0.0))

    def seek_relative(self, delta: float) -> None:
        with self._lock.write_locked():
            self._engine.seek_relative(float(delta))

    def set_volume(self, value: float) -> None:
        with self._lock.write_locked():
            self._engine.set_volume(min(max(float(value), 0.0), 1.0))

    def volume_up(self) -> None:
        with self._lock.write_locked():
            self._engine.set_volume(min(self._engine.volume() + VOLUME_STEP, 1.0))

    def volume_down(self) -> None:
        with self._lock.write_locked():
            self._engine.set_volume(max(self._engine.volume() - VOLUME_STEP, 0.0))
