"""
Spotify API client for the currently playing item

This module wraps spotipy for the one Web API call the application makes:
"get the currently playing track or episode". It handles expired tokens,
rate limiting and converts the response into the playback models.

Error Handling Strategy:
- 401 Unauthorized: refresh the access token once and retry the request
- 429 Rate Limited: remember the Retry-After delay and fail fast until it
  has elapsed, so the polling loop never sleeps inside a tick
- Other HTTP and network errors: raised as SpotifyError, which the polling
  loop treats as a transient failure
"""

import time
from typing import Any, Mapping, Optional

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from ..config.auth import SpotifyAuth, get_auth
from ..exceptions import SpotifyError
from ..utils.logger import get_logger
from .models import PlaybackItem, parse_currently_playing

# Both item types are requested, otherwise episodes come back without an item
ADDITIONAL_TYPES = "track,episode"


def parse_retry_after(headers: Optional[Mapping[str, str]], default: int = 1) -> int:
    """
    Read the Retry-After delay in whole seconds

    Missing, non-numeric or negative values fall back to the default.
    """
    try:
        value = int((headers or {}).get('Retry-After', default))
    except (TypeError, ValueError):
        return default
    return value if value >= 0 else default


class SpotifyClient:
    """
    Spotify Web API client used by the polling loop

    The authenticated spotipy client is obtained lazily from the auth
    manager on every request, which refreshes the token when needed.
    """

    def __init__(self, auth: Optional[SpotifyAuth] = None):
        """
        Initialize the client

        Args:
            auth: Authorized SpotifyAuth instance, defaults to the global one
        """
        self.auth = auth or get_auth()
        self.logger = get_logger(__name__)
        self._blocked_until = 0.0

    @property
    def client(self) -> spotipy.Spotify:
        """Authenticated spotipy client with a valid access token"""
        return self.auth.get_spotify_client()

    def _rate_limit(self) -> None:
        remaining = self._blocked_until - time.monotonic()
        if remaining > 0:
            raise SpotifyError(
                f"Rate limited by Spotify, next request allowed in {remaining:.0f}s",
                retry_after=int(remaining) + 1
            )

    def _make_request(self, func, *args, **kwargs) -> Any:
        """
        Rate-limited API request wrapper with error translation

        Args:
            func: spotipy method to call
            *args: Positional arguments for the method
            **kwargs: Keyword arguments for the method

        Returns:
            API response data

        Raises:
            SpotifyError: For any API or network failure
        """
        self._rate_limit()

        try:
            try:
                return func(*args, **kwargs)
            except SpotifyException as e:
                if e.http_status != 401:
                    raise
                # Token rejected before its expiry time, refresh once and retry
                self.logger.debug("Spotify rejected the access token, refreshing...")
                self.auth.refresh_access_token()
                return func(*args, **kwargs)
        except SpotifyException as e:
            if e.http_status == 429:
                retry_after = parse_retry_after(e.headers)
                self._blocked_until = time.monotonic() + retry_after
                self.logger.warning(f"Rate limited, waiting {retry_after} seconds...")
                raise SpotifyError(
                    "Rate limited by Spotify",
                    details={'status': 429},
                    retry_after=retry_after
                ) from e
            raise SpotifyError(
                f"Spotify API error {e.http_status}: {e.msg}",
                details={'status': e.http_status},
                is_auth_error=e.http_status == 401
            ) from e
        except requests.RequestException as e:
            raise SpotifyError(f"Network error talking to Spotify: {e}") from e

    def get_currently_playing(self) -> Optional[PlaybackItem]:
        """
        Get the item currently playing on the user's account

        Returns:
            Track or Episode, or None when nothing is playing

        Raises:
            SpotifyError: If the request fails
            AuthorizationError: If the access token cannot be refreshed
        """
        self._rate_limit()
        payload = self._make_request(self.client.currently_playing, additional_types=ADDITIONAL_TYPES)
        return parse_currently_playing(payload)

    def close(self) -> None:
        """Close HTTP sessions held by spotipy objects"""
        sp = self.auth.cached_client
        if sp is None:
            return
        session = getattr(sp, '_session', None)
        close_fn = getattr(session, 'close', None)
        if callable(close_fn):
            close_fn()


# Global client instance for singleton pattern implementation
_client_instance: Optional[SpotifyClient] = None


def get_spotify_client() -> SpotifyClient:
    """
    Factory function to retrieve the global Spotify client instance

    Returns:
        Global SpotifyClient instance bound to the global auth manager
    """
    global _client_instance
    if not _client_instance:
        _client_instance = SpotifyClient()
    return _client_instance


def reset_spotify_client() -> None:
    """Reset the global Spotify client instance"""
    global _client_instance
    if _client_instance is not None:
        _client_instance.close()
    _client_instance = None

