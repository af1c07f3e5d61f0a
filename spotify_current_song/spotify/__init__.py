"""
Spotify integration package
Web API client for the currently playing item and its data models
"""

from .models import Track, Episode, PlaybackItem, parse_currently_playing
from .client import SpotifyClient, get_spotify_client, reset_spotify_client

__all__ = [
    'Track',
    'Episode',
    'PlaybackItem',
    'parse_currently_playing',
    'SpotifyClient',
    'get_spotify_client',
    'reset_spotify_client'
]
