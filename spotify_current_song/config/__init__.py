"""
Configuration management package for Spotify Current Song

This package provides the configuration side of the application:

1. Settings Management (settings.py):
   - Application configuration from YAML files and environment variables
   - Settings validation before any network activity
   - Centralized configuration access throughout the application

2. Authentication Management (auth.py):
   - Spotify OAuth2 PKCE login flow with a single-use local callback listener
   - Access token refresh for long polling sessions

Usage:

    from spotify_current_song.config import get_settings, get_auth

    settings = get_settings()
    auth = get_auth()
"""

# Settings management imports
from .settings import get_settings, reload_settings, Settings

# Authentication management imports
from .auth import get_auth, reset_auth, SpotifyAuth, AuthState, PkceCredentials, TokenInfo

__all__ = [
    # Settings management
    'get_settings',
    'reload_settings',
    'Settings',

    # Authentication management
    'get_auth',
    'reset_auth',
    'SpotifyAuth',
    'AuthState',
    'PkceCredentials',
    'TokenInfo'
]
