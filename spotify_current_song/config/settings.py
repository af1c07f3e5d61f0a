"""
Configuration management for Spotify Current Song

This module handles loading, validation, and management of application settings
from multiple sources including YAML files and environment variables. Settings
are loaded once at startup and treated as read-only for the process lifetime.

The configuration is organized into logical sections using dataclasses:
- Spotify login settings (client id, callback port, scope)
- Output file settings (location, text format, empty-file behaviour)
- Polling settings (interval)
- Artist licences (artist name -> licence text)
- Logging and network options

Keys may be written in snake_case (``client_id``) or in the camelCase form
used by older configuration files (``clientId``). A legacy
``SpotifyApiOptions`` section holding every option flat is accepted as well.
"""

import os
import re
import logging
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, asdict
from dotenv import load_dotenv

# Load environment variables from .env file if present
load_dotenv()

logger = logging.getLogger(__name__)

SONG_TOKEN = "{SONG}"
ARTIST_TOKEN = "{ARTIST}"
LICENCE_TOKEN = "{LICENCE}"

DEFAULT_CLIENT_ID = "a810260eade74475addf269c50d87929"
DEFAULT_TEXT_FORMAT = f"{SONG_TOKEN} by {ARTIST_TOKEN} - {LICENCE_TOKEN}"
CALLBACK_PATH = "/callback"

# Sections whose keys are spread across every dataclass
LEGACY_SECTIONS = ('spotify_api_options',)


@dataclass
class SpotifyConfig:
    """
    Spotify login configuration

    The client id belongs to a Spotify application registered for the PKCE
    flow, so no client secret is needed. The callback port can only be
    changed together with the client id, since the redirect URI must be
    registered on the Spotify application.
    """
    client_id: str = DEFAULT_CLIENT_ID
    auth_server_port: int = 8035
    scope: str = "user-read-currently-playing"
    authorization_timeout_seconds: int = 0  # 0 waits forever


@dataclass
class OutputConfig:
    """
    Output file configuration

    Controls where the current song text is written and how it looks.
    Valid tokens in the text format are {SONG}, {ARTIST} and {LICENCE}.
    """
    file_directory_path: str = "."
    current_song_filename: str = "spotify-currently-playing.txt"
    current_song_text_format: str = DEFAULT_TEXT_FORMAT
    write_empty_file_when_no_track_playing: bool = True
    max_write_failures: int = 5


@dataclass
class PollingConfig:
    """Delay (in milliseconds) between two Spotify API calls"""
    poll_interval_milliseconds: int = 3000


@dataclass
class LoggingConfig:
    """
    Logging configuration and output settings

    Controls log level, optional rotating log file and console formatting.
    """
    level: str = "INFO"
    file: str = ""
    max_size: str = "10MB"
    backup_count: int = 3
    console_output: bool = True
    colored_output: bool = True


@dataclass
class NetworkConfig:
    """HTTP timeouts and retry counts used for Spotify requests"""
    request_timeout: int = 30
    max_retries: int = 3


def normalize_key(key: str) -> str:
    """
    Convert a configuration key to snake_case

    Accepts snake_case, camelCase and PascalCase keys so that files written
    for older releases keep working.

    Args:
        key: Key as written in the configuration file

    Returns:
        snake_case key
    """
    return re.sub(r'(?<!^)(?=[A-Z])', '_', str(key)).lower()


class Settings:
    """
    Main settings class that manages all configuration

    This class serves as the central configuration manager, loading settings
    from multiple sources (YAML files, environment variables) and providing
    a unified interface for accessing configuration throughout the application.

    The class handles:
    - Loading configuration from YAML files
    - Overriding with environment variables
    - Validating configuration values
    - Composing derived values (redirect URI, output file path)
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize settings from config file or environment variables

        Args:
            config_path: Path to custom config file, if None uses default locations
        """
        self.config_path = config_path
        self.config_dir = Path.home() / ".spotify-current-song"
        self.loaded_from: Optional[Path] = None

        # Initialize all configuration objects with default values
        self.spotify = SpotifyConfig()
        self.output = OutputConfig()
        self.polling = PollingConfig()
        self.logging = LoggingConfig()
        self.network = NetworkConfig()
        self.artist_licences: Dict[str, str] = {}

        # Load configuration from various sources in order of precedence
        self._load_config()
        self._load_environment_variables()

    def _load_config(self) -> None:
        """
        Load configuration from YAML file

        Searches for configuration files in multiple locations in order of
        precedence. The first file found will be used.
        """
        config_paths = [
            self.config_path,
            self.config_dir / "config.yaml",
            Path("config/config.yaml"),
            Path("config.yaml")
        ]

        config_data = {}
        for path in config_paths:
            if path and Path(path).exists():
                try:
                    with open(path, 'r', encoding='utf-8') as f:
                        config_data = yaml.safe_load(f) or {}
                    self.loaded_from = Path(path)
                    break
                except Exception as e:
                    logger.warning(f"Failed to load config from {path}: {e}")

        if not isinstance(config_data, dict):
            logger.warning(f"Ignoring config file {self.loaded_from}: top level must be a mapping")
            config_data = {}

        self._apply_config(config_data)

    def _sections(self) -> Dict[str, Any]:
        return {
            'spotify': self.spotify,
            'output': self.output,
            'polling': self.polling,
            'logging': self.logging,
            'network': self.network,
        }

    def _apply_config(self, config_data: Dict[str, Any]) -> None:
        """
        Apply configuration data to dataclass instances

        Maps configuration sections from the YAML file to the appropriate
        dataclass instances, updating only the attributes that exist in
        both the config file and the dataclass definition.

        Args:
            config_data: Dictionary containing configuration sections
        """
        config_mapping = self._sections()

        for raw_section, section_data in config_data.items():
            section_name = normalize_key(raw_section)

            if section_name == 'artist_licences':
                self._apply_licences(section_data)
            elif section_name in LEGACY_SECTIONS and isinstance(section_data, dict):
                # Flat section: every key is looked up in every dataclass
                for key, value in section_data.items():
                    self._apply_flat_value(normalize_key(key), value)
            elif section_name in config_mapping and isinstance(section_data, dict):
                config_obj = config_mapping[section_name]
                for key, value in section_data.items():
                    attribute = normalize_key(key)
                    if hasattr(config_obj, attribute):
                        setattr(config_obj, attribute, value)
                    else:
                        logger.debug(f"Unknown option '{raw_section}.{key}' ignored")

    def _apply_flat_value(self, key: str, value: Any) -> None:
        if key == 'artist_licences':
            self._apply_licences(value)
            return
        for config_obj in self._sections().values():
            if hasattr(config_obj, key):
                setattr(config_obj, key, value)
                return
        logger.debug(f"Unknown option '{key}' ignored")

    def _apply_licences(self, data: Any) -> None:
        if data is None:
            return
        if not isinstance(data, dict):
            logger.warning("artist_licences must be a mapping of artist name to licence text")
            return
        self.artist_licences.update(data)

    def _load_environment_variables(self) -> None:
        """
        Load configuration overrides from environment variables

        Environment variables take precedence over file-based configuration.
        Integer values that cannot be parsed are reported and ignored.
        """
        env_mappings = {
            'SPOTIFY_CLIENT_ID': (self.spotify, 'client_id', str),
            'SPOTIFY_AUTH_SERVER_PORT': (self.spotify, 'auth_server_port', int),
            'CURRENT_SONG_DIRECTORY': (self.output, 'file_directory_path', str),
            'CURRENT_SONG_FILENAME': (self.output, 'current_song_filename', str),
            'CURRENT_SONG_FORMAT': (self.output, 'current_song_text_format', str),
            'CURRENT_SONG_POLL_INTERVAL_MS': (self.polling, 'poll_interval_milliseconds', int),
        }

        for env_var, (config_obj, attribute, cast) in env_mappings.items():
            value = os.getenv(env_var)
            if not value:
                continue
            try:
                setattr(config_obj, attribute, cast(value))
            except ValueError:
                logger.warning(f"Ignoring {env_var}={value!r}: expected {cast.__name__}")

    @property
    def redirect_uri(self) -> str:
        """Redirect URI registered on the Spotify application"""
        return f"http://localhost:{self.spotify.auth_server_port}{CALLBACK_PATH}"

    def get_output_directory(self) -> Path:
        """
        Get the expanded output directory path

        Returns:
            Path object for the directory holding the current song file
        """
        return Path(self.output.file_directory_path).expanduser()

    def get_output_file_path(self) -> Path:
        """
        Get the full path of the current song file

        Returns:
            Output directory joined with the configured filename
        """
        return self.get_output_directory() / self.output.current_song_filename

    def get_config_directory(self) -> Path:
        """Get the user configuration directory"""
        return self.config_dir

    def validate(self) -> List[str]:
        """
        Validate current configuration

        Performs validation of all configuration values so that startup can
        abort before any network activity.

        Returns:
            List of human readable errors, empty when the configuration is valid
        """
        errors = []

        if not self.spotify.client_id or not isinstance(self.spotify.client_id, str):
            errors.append("Spotify client_id is required")

        port = self.spotify.auth_server_port
        if not isinstance(port, int) or isinstance(port, bool) or not 0 <= port <= 65535:
            errors.append(f"Invalid auth server port: {port}")

        timeout = self.spotify.authorization_timeout_seconds
        if not isinstance(timeout, int) or timeout < 0:
            errors.append(f"Invalid authorization timeout: {timeout}")

        interval = self.polling.poll_interval_milliseconds
        if not isinstance(interval, int) or interval < 100:
            errors.append(f"Poll interval must be at least 100 ms, got {interval}")

        failures = self.output.max_write_failures
        if not isinstance(failures, int) or failures < 1:
            errors.append(f"max_write_failures must be at least 1, got {failures}")

        filename = self.output.current_song_filename
        if not filename or not isinstance(filename, str):
            errors.append("current_song_filename is required")
        elif '/' in filename or '\\' in filename:
            errors.append(f"current_song_filename must not contain path separators: {filename}")

        if not isinstance(self.output.current_song_text_format, str):
            errors.append("current_song_text_format must be a string")

        write_empty = self.output.write_empty_file_when_no_track_playing
        if not isinstance(write_empty, bool):
            errors.append(f"write_empty_file_when_no_track_playing must be true or false, got {write_empty!r}")

        for artist, licence in self.artist_licences.items():
            if not isinstance(artist, str) or not isinstance(licence, str):
                errors.append(f"Invalid artist licence entry: {artist!r} -> {licence!r}")

        return errors

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert settings to a dictionary

        Returns:
            Dictionary with one entry per configuration section
        """
        return {
            'spotify': asdict(self.spotify),
            'output': asdict(self.output),
            'polling': asdict(self.polling),
            'artist_licences': dict(self.artist_licences),
            'logging': asdict(self.logging),
            'network': asdict(self.network),
        }

    def __str__(self) -> str:
        """
        String representation of settings

        Returns:
            String summary of key configuration values
        """
        sections = [
            f"Output: {self.get_output_file_path()}",
            f"Format: {self.output.current_song_text_format!r}",
            f"Interval: {self.polling.poll_interval_milliseconds}ms",
            f"Port: {self.spotify.auth_server_port}",
        ]
        return f"Settings({', '.join(sections)})"


# Global settings instance for singleton pattern
settings = Settings()


def get_settings() -> Settings:
    """
    Get the global settings instance

    Returns:
        The global Settings instance
    """
    return settings


def reload_settings(config_path: Optional[str] = None) -> Settings:
    """
    Reload settings from configuration files

    Creates a new settings instance with updated configuration from files
    and environment variables. Used when the CLI receives ``--config``.

    Args:
        config_path: Optional path to specific config file

    Returns:
        New Settings instance with reloaded configuration
    """
    global settings
    settings = Settings(config_path)
    return settings
