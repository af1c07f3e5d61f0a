"""Integration tests for the orchestrator"""

import time

import pytest
from unittest.mock import Mock, patch

from spotify_current_song.exceptions import AuthorizationError, ConfigError, FileWriteError
from spotify_current_song.output.writer import FileWriter, WriteResult
from spotify_current_song.spotify.models import Track
from spotify_current_song.sync.extractor import SongExtractor


@pytest.fixture
def mock_auth():
    auth = Mock()
    auth.is_authorized = False
    return auth


@pytest.fixture
def mock_client():
    client = Mock()
    client.get_currently_playing.return_value = Track('Nightcall', ('Kavinsky',))
    return client


@pytest.fixture
def fast_settings(make_settings):
    return make_settings({'polling': {'poll_interval_milliseconds': 100}})


class TestSongExtractor:
    """Test orchestrator lifetime"""

    def test_invalid_settings_stop_before_network(self, make_settings, mock_auth):
        """Test invalid settings raise before the login starts"""
        settings = make_settings({'polling': {'poll_interval_milliseconds': 10}})
        extractor = SongExtractor(settings, auth=mock_auth)

        with pytest.raises(ConfigError) as exc_info:
            extractor.start()

        assert 'Poll interval' in str(exc_info.value)
        mock_auth.authorize.assert_not_called()

    def test_run_once(self, settings, mock_auth, mock_client):
        """Test one tick after login writes the file and releases resources"""
        factory = Mock(return_value=mock_client)
        extractor = SongExtractor(settings, auth=mock_auth, client_factory=factory)

        assert extractor.run_once() is WriteResult.WRITTEN

        mock_auth.authorize.assert_called_once()
        factory.assert_called_once_with(mock_auth)
        assert settings.get_output_file_path().read_text(encoding='utf-8') == \
            "Nightcall by Kavinsky - (Copyright free)"
        mock_auth.close.assert_called_once()
        mock_client.close.assert_called_once()

    def test_run_once_write_failure(self, settings, mock_auth, mock_client):
        """Test a failed single write is reported"""
        extractor = SongExtractor(settings, auth=mock_auth, client_factory=Mock(return_value=mock_client))

        with patch.object(FileWriter, '_persist', side_effect=OSError("read-only")):
            with pytest.raises(FileWriteError):
                extractor.run_once()

    def test_already_authorized_auth_is_reused(self, settings, mock_auth, mock_client):
        """Test an authorized session skips the login"""
        mock_auth.is_authorized = True
        extractor = SongExtractor(settings, auth=mock_auth, client_factory=Mock(return_value=mock_client))

        extractor.run_once()
        mock_auth.authorize.assert_not_called()

    def test_start_and_stop(self, fast_settings, mock_auth, mock_client):
        """Test polling runs in the background until stopped"""
        extractor = SongExtractor(fast_settings, auth=mock_auth, client_factory=Mock(return_value=mock_client))
        output = fast_settings.get_output_file_path()

        extractor.start()
        try:
            deadline = time.monotonic() + 5
            while not output.exists() and time.monotonic() < deadline:
                time.sleep(0.01)
            assert extractor.loop.is_running
        finally:
            extractor.stop()

        assert output.read_text(encoding='utf-8') == "Nightcall by Kavinsky - (Copyright free)"
        assert not extractor.loop.is_running

        extractor.stop()
        mock_auth.close.assert_called_once()
        mock_client.close.assert_called_once()

    def test_wait_reraises_fatal_error(self, make_settings, mock_auth, mock_client):
        """Test a fatal write failure surfaces from wait()"""
        settings = make_settings({
            'polling': {'poll_interval_milliseconds': 100},
            'output': {'max_write_failures': 2},
        })
        extractor = SongExtractor(settings, auth=mock_auth, client_factory=Mock(return_value=mock_client))

        with patch.object(FileWriter, '_persist', side_effect=OSError("disk full")):
            with extractor:
                extractor.start()
                with pytest.raises(FileWriteError):
                    extractor.wait(timeout=5)

        mock_client.close.assert_called_once()

    def test_login_failure_releases_resources(self, settings, mock_auth):
        """Test a failed login still closes the listener"""
        mock_auth.authorize.side_effect = AuthorizationError("Port 8035 is in use")
        factory = Mock()
        extractor = SongExtractor(settings, auth=mock_auth, client_factory=factory)

        with pytest.raises(AuthorizationError):
            extractor.start()

        mock_auth.close.assert_called_once()
        factory.assert_not_called()
        assert extractor.loop is None

    def test_no_restart_after_stop(self, settings, mock_auth):
        """Test a stopped orchestrator cannot be reused"""
        extractor = SongExtractor(settings, auth=mock_auth)
        extractor.stop()

        with pytest.raises(RuntimeError):
            extractor.start()

    def test_default_auth_built_from_settings(self, settings, mock_client):
        """Test an auth manager is created when none is given"""
        with patch('spotify_current_song.sync.extractor.SpotifyAuth') as auth_class:
            auth_class.return_value.is_authorized = False
            extractor = SongExtractor(settings, client_factory=Mock(return_value=mock_client))
            extractor.run_once()

        auth_class.assert_called_once_with(settings)
        auth_class.return_value.authorize.assert_called_once()
