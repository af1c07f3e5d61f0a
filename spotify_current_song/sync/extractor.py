"""
Application orchestrator

Wires settings, authorization, the Spotify client, the file writer and the
polling loop together and owns their lifetime. Every resource acquired by
``start()`` is released by ``stop()``, also when startup fails half way.
"""

from typing import Callable, Optional

from ..config.auth import SpotifyAuth
from ..config.settings import Settings, get_settings
from ..exceptions import ConfigError, FileWriteError
from ..output.writer import FileWriter, WriteResult
from ..spotify.client import SpotifyClient
from ..utils.helpers import format_interval
from ..utils.logger import get_logger
from .poller import PollingLoop


class SongExtractor:
    """
    Writes the currently playing Spotify item to a file until stopped

    Usage:

        with SongExtractor(settings) as extractor:
            extractor.start()
            extractor.wait()

    Attributes:
        settings: Application settings
        auth: Authorization manager, created from settings when not given
        client: Spotify client, available after startup
        writer: Output file writer, available after startup
        loop: Polling loop, available after startup
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        auth: Optional[SpotifyAuth] = None,
        client_factory: Optional[Callable[[SpotifyAuth], SpotifyClient]] = None
    ):
        """
        Initialize the orchestrator

        Args:
            settings: Settings to use, defaults to the global settings
            auth: Authorization manager, defaults to a new one for settings
            client_factory: Builds the Spotify client from the authorized
                            auth manager, defaults to SpotifyClient
        """
        self.settings = settings or get_settings()
        self.auth = auth
        self.client_factory = client_factory or SpotifyClient
        self.logger = get_logger(__name__)

        self.client: Optional[SpotifyClient] = None
        self.writer: Optional[FileWriter] = None
        self.loop: Optional[PollingLoop] = None
        self._stopped = False

    def _validate_settings(self) -> None:
        errors = self.settings.validate()
        if errors:
            raise ConfigError(
                "Invalid configuration: " + "; ".join(errors),
                details={'errors': errors}
            )

    def _prepare(self) -> None:
        """Validate, authorize and build the polling components"""
        if self._stopped:
            raise RuntimeError("SongExtractor cannot be restarted after stop()")
        if self.loop is not None:
            return

        self._validate_settings()

        if self.auth is None:
            self.auth = SpotifyAuth(self.settings)
        if not self.auth.is_authorized:
            self.auth.authorize()

        self.client = self.client_factory(self.auth)
        self.writer = FileWriter(
            self.settings.get_output_file_path(),
            max_failures=self.settings.output.max_write_failures
        )
        self.loop = PollingLoop(self.client, self.writer, self.settings)

    def start(self) -> None:
        """
        Authorize and start polling in the background

        Raises:
            ConfigError: If the settings are invalid (nothing is bound or sent)
            AuthorizationError: If the login flow fails
        """
        try:
            self._prepare()
            self.loop.start()
        except BaseException:
            self.stop()
            raise

        self.logger.console_info(
            f"Writing the current song to {self.writer.path} every "
            f"{format_interval(self.settings.polling.poll_interval_milliseconds)}"
        )

    def run_once(self) -> Optional[WriteResult]:
        """
        Authorize and run a single polling tick

        Returns:
            Result of the write, None when nothing was written

        Raises:
            ConfigError: If the settings are invalid
            AuthorizationError: If the login flow fails
            FileWriteError: If the file could not be written
        """
        try:
            self._prepare()
            result = self.loop.tick()
        finally:
            self.stop()

        if result in (WriteResult.FAILED, WriteResult.FATAL):
            raise FileWriteError(
                f"Could not write {self.writer.path}",
                details={'path': str(self.writer.path)}
            )
        return result

    def wait(self, timeout: Optional[float] = None) -> None:
        """
        Block until polling stops

        Raises:
            FileWriteError: If polling stopped because the file could not be written
        """
        if self.loop is not None:
            self.loop.wait(timeout)
            if self.loop.fatal_error is not None:
                raise self.loop.fatal_error

    def stop(self) -> None:
        """Stop polling and release the listener and HTTP sessions. Idempotent."""
        if self._stopped:
            return
        self._stopped = True

        try:
            if self.loop is not None:
                self.loop.stop()
        finally:
            if self.auth is not None:
                self.auth.close()
            if self.client is not None:
                self.client.close()
        self.logger.debug("Song extractor stopped")

    def __enter__(self) -> 'SongExtractor':
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
