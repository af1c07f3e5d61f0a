"""
Exception classes for Spotify Current Song.

Each exception maps to one failure class of the application so callers can
decide whether a failure is fatal or can be absorbed locally.

Exception Hierarchy:
    CurrentSongError (base)
        ConfigError - invalid configuration, fatal before any network activity
        AuthorizationError - login flow or token endpoint failure
        SpotifyError - Web API call failure, usually transient
        FileWriteError - output file could not be written, fatal after escalation
"""

from typing import Any, Dict, Optional


class CurrentSongError(Exception):
    """
    Base exception for all Spotify Current Song errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional context (port, file path,
                 HTTP status, original error).
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return the error message for display."""
        return self.message


class ConfigError(CurrentSongError):
    """
    Raised when the loaded configuration cannot be used.

    This is a CRITICAL error: it is raised before the callback listener is
    bound or any request is sent.

    Example:
        raise ConfigError(
            "Invalid configuration: poll interval must be at least 100 ms",
            details={'errors': [...]}
        )
    """
    pass


class AuthorizationError(CurrentSongError):
    """
    Raised when the PKCE login flow cannot produce a usable token.

    Covers binding the callback listener (details carry the port), an error
    or mismatched state returned through the redirect, and any failure of the
    token endpoint during code exchange or refresh.
    """
    pass


class SpotifyError(CurrentSongError):
    """
    Raised when a Spotify Web API call fails.

    The polling loop treats this as transient and skips the tick.

    Attributes:
        is_auth_error: True when Spotify rejected the access token.
        retry_after: Seconds requested by a 429 response, if any.
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        is_auth_error: bool = False,
        retry_after: Optional[int] = None
    ) -> None:
        super().__init__(message, details)
        self.is_auth_error = is_auth_error
        self.retry_after = retry_after


class FileWriteError(CurrentSongError):
    """
    Raised when the output file keeps failing to be written.

    Raised once the configured number of consecutive write failures has been
    reached, and on any later write attempt. The process cannot fulfil its
    purpose anymore and must stop.
    """
    pass
