"""Test configuration and fixtures"""

import pytest
import tempfile
import yaml
from pathlib import Path

from spotify_current_song.config.settings import Settings

# Environment variables that would leak the developer's setup into tests
SETTINGS_ENV_VARS = [
    'SPOTIFY_CLIENT_ID',
    'SPOTIFY_AUTH_SERVER_PORT',
    'CURRENT_SONG_DIRECTORY',
    'CURRENT_SONG_FILENAME',
    'CURRENT_SONG_FORMAT',
    'CURRENT_SONG_POLL_INTERVAL_MS',
]


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove settings environment overrides"""
    for var in SETTINGS_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return monkeypatch


@pytest.fixture
def write_config(temp_dir, clean_env):
    """Write a YAML config file into the temp directory and return its path"""
    def _write(config=None):
        config = dict(config or {})
        output = dict(config.get('output') or {})
        output.setdefault('file_directory_path', str(temp_dir / 'out'))
        # Sections written later override the defaults placed first
        config = {'output': output, **{k: v for k, v in config.items() if k != 'output'}}

        path = temp_dir / 'config.yaml'
        path.write_text(yaml.safe_dump(config, sort_keys=False), encoding='utf-8')
        return path
    return _write


@pytest.fixture
def make_settings(write_config):
    """Settings factory isolated from the user's config files and environment"""
    def _make(config=None):
        return Settings(str(write_config(config)))
    return _make


@pytest.fixture
def settings(make_settings):
    """Default settings writing into the temp directory"""
    return make_settings()


@pytest.fixture
def sample_track_payload():
    """Currently playing response for a track"""
    return {
        'is_playing': True,
        'currently_playing_type': 'track',
        'progress_ms': 42000,
        'item': {
            'type': 'track',
            'id': '0U0ldCRmgCqhVvD6ksG63j',
            'name': 'Nightcall',
            'artists': [{'id': '0id62QV2SZZfvBn9xpmuCl', 'name': 'Kavinsky'}],
            'duration_ms': 258000,
        }
    }


@pytest.fixture
def sample_collaboration_payload():
    """Currently playing response for a track with two artists"""
    return {
        'is_playing': True,
        'currently_playing_type': 'track',
        'item': {
            'type': 'track',
            'name': 'Odd Look',
            'artists': [{'name': 'Kavinsky'}, {'name': 'The Weeknd'}],
        }
    }


@pytest.fixture
def sample_episode_payload():
    """Currently playing response for a podcast episode"""
    return {
        'is_playing': True,
        'currently_playing_type': 'episode',
        'item': {
            'type': 'episode',
            'name': 'Episode 12: Synthwave',
            'show': {'name': 'Retro Sounds'},
        }
    }


@pytest.fixture
def sample_paused_payload(sample_track_payload):
    """Currently playing response while playback is paused"""
    payload = dict(sample_track_payload)
    payload['is_playing'] = False
    return payload
