"""
Main CLI interface for Spotify Current Song

This module provides the command-line interface of the application and is
its primary entry point.

The CLI is built using Click framework and provides:
- run: log in to Spotify and keep the current song file up to date
- preview: render the configured text format without touching the network
- config show: display the effective configuration
- doctor: check configuration, output directory and callback port
"""

import os
import sys
import click
import functools
from pathlib import Path

from . import __version__
from .config.settings import get_settings, reload_settings
from .exceptions import CurrentSongError
from .output.formatter import describe
from .output.writer import WriteResult
from .spotify.models import Episode, Track
from .sync.extractor import SongExtractor
from .utils.logger import configure_from_settings, get_logger, get_current_log_file
from .utils.helpers import format_interval, is_port_available


logger = get_logger(__name__)


def handle_error(func):
    """
    Decorator to handle common CLI errors gracefully

    Wraps CLI command functions to provide consistent error handling across
    all commands. Application errors are shown in red with exit code 1,
    Ctrl+C exits with the standard SIGINT code.

    Args:
        func: The CLI command function to wrap

    Returns:
        Wrapped function with error handling
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            click.echo(click.style("\n\nStopped by user", fg='yellow'))
            sys.exit(130)  # Standard exit code for SIGINT
        except CurrentSongError as e:
            logger.debug(f"Command failed: {e} {e.details}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
        except Exception as e:
            logger.error(f"Command failed: {e}")
            click.echo(click.style(f"Error: {e}", fg='red'), err=True)
            sys.exit(1)
    return wrapper


# Main CLI group - root command that all subcommands attach to
@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
@click.option('--config', type=click.Path(), help='Path to config file')
@click.pass_context
def cli(ctx, version, verbose, config):
    """
    Spotify Current Song - write the song you are listening to into a file

    Logs in to Spotify once, then polls the currently playing track or
    episode and keeps a small text file up to date, e.g. for a stream overlay.
    """
    ctx.ensure_object(dict)

    if version:
        click.echo(f"Spotify Current Song v{__version__}")
        return

    if config:
        reload_settings(config)

    ctx.obj['verbose'] = verbose
    configure_from_settings(verbose=verbose)

    if config:
        logger.console_info(f"Loaded config: {config}")

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.option('--once', is_flag=True, help='Write the current song once and exit')
@handle_error
def run(once):
    """
    Log in to Spotify and keep the current song file up to date

    Opens the browser for the Spotify login, then writes the currently
    playing item every poll interval until stopped with Ctrl+C.
    """
    settings = get_settings()
    extractor = SongExtractor(settings)

    if once:
        result = extractor.run_once()
        if result is WriteResult.WRITTEN:
            click.echo(f"Written to {settings.get_output_file_path()}")
        elif result is WriteResult.SKIPPED:
            click.echo("File already up to date")
        else:
            click.echo("Nothing written")
        return

    with extractor:
        extractor.start()
        click.echo(click.style("Press Ctrl+C to stop", fg='cyan'))
        extractor.wait()


@cli.command()
@click.option('--song', default='Nightcall', show_default=True, help='Song or episode title')
@click.option('--artist', multiple=True, help='Artist name, repeat for several artists')
@click.option('--episode', is_flag=True, help='Preview a podcast episode, --artist is the show')
@handle_error
def preview(song, artist, episode):
    """
    Render the configured text format with sample values

    Uses the configured artist licences. Nothing is sent to Spotify and no
    file is written.
    """
    settings = get_settings()
    artists = artist or ('Kavinsky',)

    if episode:
        item = Episode(name=song, show_name=', '.join(artists))
    else:
        item = Track(name=song, artist_names=tuple(artists))

    text = describe(item, settings.output.current_song_text_format, settings.artist_licences)
    click.echo(f"Format: {settings.output.current_song_text_format}")
    click.echo(f"Output: {text}")


@cli.group()
def config():
    """
    Configuration management

    Command group for viewing the effective configuration.
    """
    pass


@config.command()
@handle_error
def show():
    """
    Show current configuration

    Displays the settings after applying the config file and environment
    variables.
    """
    settings = get_settings()

    click.echo("Current Configuration:\n")
    if settings.loaded_from:
        click.echo(f"Loaded from: {settings.loaded_from}\n")
    else:
        click.echo("Loaded from: defaults (no config file found)\n")

    click.echo("Spotify:")
    click.echo(f"   Client ID: {settings.spotify.client_id}")
    click.echo(f"   Redirect URI: {settings.redirect_uri}")
    click.echo(f"   Scope: {settings.spotify.scope}")

    click.echo("\nOutput:")
    click.echo(f"   File: {settings.get_output_file_path()}")
    click.echo(f"   Text format: {settings.output.current_song_text_format}")
    click.echo(f"   Write empty file when nothing plays: {settings.output.write_empty_file_when_no_track_playing}")
    click.echo(f"   Max consecutive write failures: {settings.output.max_write_failures}")

    click.echo("\nPolling:")
    click.echo(f"   Interval: {format_interval(settings.polling.poll_interval_milliseconds)}")

    click.echo("\nArtist licences:")
    if settings.artist_licences:
        for artist_name, licence in settings.artist_licences.items():
            click.echo(f"   {artist_name}: {licence}")
    else:
        click.echo("   (none)")


def _nearest_existing_directory(path: Path) -> Path:
    for candidate in [path, *path.parents]:
        if candidate.exists():
            return candidate
    return Path.cwd()


@cli.command()
@handle_error
def doctor():
    """
    Run system diagnostics

    Checks the configuration, whether the output file can be written and
    whether the callback port is free for the Spotify login.
    """
    click.echo("Running diagnostics...\n")

    issues = []
    settings = get_settings()

    errors = settings.validate()
    if errors:
        click.echo("Configuration: Invalid")
        issues.extend(errors)
    else:
        click.echo("Configuration: OK")

    output_dir = settings.get_output_directory()
    existing = _nearest_existing_directory(output_dir.resolve())
    if existing.is_dir() and os.access(existing, os.W_OK):
        suffix = "" if existing == output_dir.resolve() else " (will be created)"
        click.echo(f"Output directory: {output_dir}{suffix}")
    else:
        click.echo(f"Output directory: {output_dir} (not writable)")
        issues.append(f"Cannot write to {output_dir}")

    port = settings.spotify.auth_server_port
    if port == 0 or is_port_available(port):
        click.echo(f"Callback port: {port} available")
    else:
        click.echo(f"Callback port: {port} in use")
        issues.append(f"Port {port} is in use, the Spotify login cannot receive its callback")

    current_log = get_current_log_file()
    if current_log:
        click.echo(f"Logging: {current_log}")
    else:
        click.echo("Logging: Console only")

    if issues:
        click.echo(f"\nFound {len(issues)} issues:")
        for issue in issues:
            click.echo(f"   • {issue}")
    else:
        click.echo("\nAll systems operational!")


# Entry point for module execution
if __name__ == '__main__':
    cli()
