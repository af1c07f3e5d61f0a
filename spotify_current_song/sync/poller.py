"""
Polling loop keeping the current song file up to date

The loop asks Spotify for the currently playing item at a fixed interval,
renders it with the configured template and hands the text to the file
writer.

Scheduling:
    A single background thread runs every tick, so two ticks never overlap.
    The next tick starts one interval after the previous one started. A tick
    that takes longer than the interval delays the next one, which then
    starts immediately; missed ticks are not replayed.

Failure handling:
    - Spotify and network errors (including a failed token refresh) are
      logged and the tick does nothing else. The writer never sees them, so
      they do not count towards its failure limit.
    - A FATAL write result stops the loop. The resulting FileWriteError is
      kept in ``fatal_error`` for the orchestrator to re-raise.
"""

import threading
import time
from typing import Callable, Optional

import requests

from ..config.settings import Settings, get_settings
from ..exceptions import AuthorizationError, CurrentSongError, FileWriteError, SpotifyError
from ..output.formatter import describe
from ..output.writer import FileWriter, WriteResult
from ..spotify.client import SpotifyClient
from ..utils.helpers import format_interval, truncate_string
from ..utils.logger import get_logger

# Errors that only skip the current tick
TRANSIENT_ERRORS = (SpotifyError, AuthorizationError, requests.RequestException)


class PollingLoop:
    """
    Periodic fetch, format and write cycle

    Attributes:
        client: Spotify client providing the currently playing item
        writer: File writer for the rendered text
        settings: Application settings (template, licences, interval)
        fatal_error: Error that stopped the loop, if any
    """

    def __init__(
        self,
        client: SpotifyClient,
        writer: FileWriter,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.client = client
        self.writer = writer
        self.settings = settings or get_settings()
        self.logger = get_logger(__name__)
        self.fatal_error: Optional[CurrentSongError] = None

        self._clock = clock
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def interval_seconds(self) -> float:
        return self.settings.polling.poll_interval_milliseconds / 1000

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def tick(self) -> Optional[WriteResult]:
        """
        Run one fetch, format and write cycle

        Returns:
            Result of the write, None when the tick ended before writing
            (transient fetch failure, or nothing playing with empty writes
            disabled)

        Raises:
            FileWriteError: If the writer already gave up
        """
        try:
            item = self.client.get_currently_playing()
        except TRANSIENT_ERRORS as e:
            self.logger.warning(f"Could not get the currently playing item: {e}")
            return None

        text = describe(
            item,
            self.settings.output.current_song_text_format,
            self.settings.artist_licences
        )

        if not text and not self.settings.output.write_empty_file_when_no_track_playing:
            self.logger.debug("Nothing playing, leaving the file untouched")
            return None

        result = self.writer.write(text)
        if result is WriteResult.WRITTEN:
            if text:
                self.logger.console_info(f"Now playing: {truncate_string(text, 80)}")
            else:
                self.logger.console_info("Nothing playing")
        return result

    def _next_delay(self, started: float) -> float:
        """Seconds until the next tick, 0 when the last tick overran"""
        elapsed = self._clock() - started
        return max(0.0, self.interval_seconds - elapsed)

    def _run(self) -> None:
        self.logger.debug(f"Polling every {format_interval(self.settings.polling.poll_interval_milliseconds)}")

        while not self._stop_event.is_set():
            started = self._clock()
            try:
                result = self.tick()
            except FileWriteError as e:
                self.fatal_error = e
                break
            except Exception as e:
                self.logger.error(f"Polling stopped by an unexpected error: {e}")
                self.fatal_error = CurrentSongError(
                    f"Polling stopped by an unexpected error: {e}",
                    details={'original_error': repr(e)}
                )
                break

            if result is WriteResult.FATAL:
                self.fatal_error = FileWriteError(
                    f"Could not write {self.writer.path} after "
                    f"{self.writer.max_failures} consecutive attempts",
                    details={'path': str(self.writer.path)}
                )
                break

            delay = self._next_delay(started)
            if delay > 0 and self._stop_event.wait(delay):
                break

        self._stop_event.set()
        self.logger.debug("Polling loop finished")

    def start(self) -> None:
        """Start polling on a background thread"""
        if self.is_running:
            raise RuntimeError("Polling loop is already running")

        self._stop_event.clear()
        self.fatal_error = None
        self._thread = threading.Thread(target=self._run, name='current-song-poller', daemon=True)
        self._thread.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the loop has stopped

        Args:
            timeout: Seconds to wait, None waits until the loop ends

        Returns:
            True if the loop is no longer running
        """
        if self._thread is None:
            return True

        # Short joins keep the main thread responsive to Ctrl-C
        deadline = time.monotonic() + timeout if timeout is not None else None
        while self._thread.is_alive():
            remaining = 0.5 if deadline is None else min(0.5, deadline - time.monotonic())
            if remaining <= 0:
                break
            self._thread.join(remaining)
        return not self._thread.is_alive()

    def stop(self) -> None:
        """Stop polling and wait for the current tick to finish. Idempotent."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
