"""Test the command line interface"""

import pytest
from click.testing import CliRunner
from unittest.mock import patch

from spotify_current_song import __version__
from spotify_current_song.exceptions import AuthorizationError
from spotify_current_song.main import cli
from spotify_current_song.output.writer import WriteResult


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep the CLI from reconfiguring the test process logging"""
    with patch('spotify_current_song.main.configure_from_settings') as configure:
        yield configure


@pytest.fixture
def config_file(write_config):
    return write_config({
        'spotify': {'auth_server_port': 0},
        'artist_licences': {'Kavinsky': '(CC BY 4.0)'},
    })


class TestCli:
    """Test CLI commands"""

    def test_version(self, runner):
        result = runner.invoke(cli, ['--version'])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_verbose_flag(self, runner, config_file, no_logging_setup):
        result = runner.invoke(cli, ['--config', str(config_file), '--verbose', 'preview'])
        assert result.exit_code == 0
        no_logging_setup.assert_called_once_with(verbose=True)

    def test_preview(self, runner, config_file):
        """Test preview uses the configured licences"""
        result = runner.invoke(cli, ['--config', str(config_file), 'preview', '--song', 'Nightcall', '--artist', 'Kavinsky'])

        assert result.exit_code == 0
        assert "Output: Nightcall by Kavinsky - (CC BY 4.0)" in result.output

    def test_preview_several_artists(self, runner, config_file):
        result = runner.invoke(cli, ['--config', str(config_file), 'preview', '--song', 'Odd Look',
                                     '--artist', 'The Weeknd', '--artist', 'Kavinsky'])

        assert result.exit_code == 0
        assert "Output: Odd Look by The Weeknd, Kavinsky - (CC BY 4.0)" in result.output

    def test_preview_episode(self, runner, config_file):
        result = runner.invoke(cli, ['--config', str(config_file), 'preview', '--episode',
                                     '--song', 'Episode 12', '--artist', 'Kavinsky'])

        assert result.exit_code == 0
        assert "Output: Episode 12 by Kavinsky - (Royalty free)" in result.output

    def test_config_show(self, runner, config_file, temp_dir):
        result = runner.invoke(cli, ['--config', str(config_file), 'config', 'show'])

        assert result.exit_code == 0
        assert str(config_file) in result.output
        assert "spotify-currently-playing.txt" in result.output
        assert "Kavinsky: (CC BY 4.0)" in result.output
        assert "3.0s" in result.output

    def test_doctor(self, runner, config_file):
        result = runner.invoke(cli, ['--config', str(config_file), 'doctor'])

        assert result.exit_code == 0
        assert "Configuration: OK" in result.output
        assert "All systems operational!" in result.output

    def test_doctor_reports_invalid_config(self, runner, write_config):
        path = write_config({'spotify': {'auth_server_port': 0}, 'polling': {'poll_interval_milliseconds': 5}})
        result = runner.invoke(cli, ['--config', str(path), 'doctor'])

        assert "Configuration: Invalid" in result.output
        assert "Found 1 issues" in result.output


class TestRunCommand:
    """Test the run command with the orchestrator mocked"""

    @patch('spotify_current_song.main.SongExtractor')
    def test_run_once(self, mock_extractor, runner, config_file):
        mock_extractor.return_value.run_once.return_value = WriteResult.WRITTEN

        result = runner.invoke(cli, ['--config', str(config_file), 'run', '--once'])

        assert result.exit_code == 0
        assert "Written to" in result.output
        mock_extractor.return_value.start.assert_not_called()

    @patch('spotify_current_song.main.SongExtractor')
    def test_run_until_stopped(self, mock_extractor, runner, config_file):
        extractor = mock_extractor.return_value
        extractor.__enter__.return_value = extractor

        result = runner.invoke(cli, ['--config', str(config_file), 'run'])

        assert result.exit_code == 0
        extractor.start.assert_called_once()
        extractor.wait.assert_called_once()
        extractor.__exit__.assert_called_once()

    @patch('spotify_current_song.main.SongExtractor')
    def test_run_error(self, mock_extractor, runner, config_file):
        mock_extractor.return_value.run_once.side_effect = AuthorizationError(
            "Could not start the authorization callback listener on port 8035"
        )

        result = runner.invoke(cli, ['--config', str(config_file), 'run', '--once'])

        assert result.exit_code == 1
        assert "Error: Could not start the authorization callback listener on port 8035" in result.output

    @patch('spotify_current_song.main.SongExtractor')
    def test_run_interrupted(self, mock_extractor, runner, config_file):
        extractor = mock_extractor.return_value
        extractor.__enter__.return_value = extractor
        extractor.wait.side_effect = KeyboardInterrupt

        result = runner.invoke(cli, ['--config', str(config_file), 'run'])

        assert result.exit_code == 130
        extractor.__exit__.assert_called_once()
