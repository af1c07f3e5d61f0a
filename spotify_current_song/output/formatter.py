"""
Text formatting for the current song file

Turns the playing item into the text written to disk by replacing the
{SONG}, {ARTIST} and {LICENCE} tokens of the configured template.
"""

import re
from typing import Dict, Optional

from ..config.settings import DEFAULT_TEXT_FORMAT
from ..spotify.models import Episode, PlaybackItem, Track

DEFAULT_LICENCE = "(Copyright free)"
EPISODE_LICENCE = "(Royalty free)"

_TOKEN_PATTERN = re.compile(r"\{(SONG|ARTIST|LICENCE)\}")


def render(template: str, song: str, artist: str, licence: str) -> str:
    """
    Replace every template token with its value

    Substitution happens in a single pass, so a value that itself contains a
    token (e.g. a song called "{ARTIST}") is written as-is. Braces around any
    other word are left untouched.

    Args:
        template: Format string containing zero or more tokens
        song: Value for {SONG}
        artist: Value for {ARTIST}
        licence: Value for {LICENCE}

    Returns:
        Rendered text
    """
    values = {'SONG': song, 'ARTIST': artist, 'LICENCE': licence}
    return _TOKEN_PATTERN.sub(lambda match: values[match.group(1)], template)


def resolve_licence(artist_name: Optional[str], table: Dict[str, str]) -> str:
    """Licence text for an artist, the copyright free default when unmapped"""
    if not artist_name:
        return DEFAULT_LICENCE
    return table.get(artist_name, DEFAULT_LICENCE)


def licence_for_track(track: Track, table: Dict[str, str]) -> str:
    """
    Licence of a track

    The joined artist string ("A, B") is looked up first so a collaboration
    can carry its own licence, then each artist in listed order.
    """
    candidates = [track.all_artists] + list(track.artist_names)
    for name in candidates:
        if name and name in table:
            return table[name]
    return DEFAULT_LICENCE


def describe(
    item: Optional[PlaybackItem],
    template: str = DEFAULT_TEXT_FORMAT,
    table: Optional[Dict[str, str]] = None
) -> str:
    """
    Text describing the playing item

    Episodes use the show name as artist and always carry the royalty free
    licence. Nothing playing gives an empty string.

    Args:
        item: Track, Episode or None
        template: Format string
        table: Artist licences

    Returns:
        Rendered text, empty when nothing is playing
    """
    if item is None:
        return ""

    table = table or {}
    if isinstance(item, Episode):
        return render(template, item.name, item.show_name, EPISODE_LICENCE)

    return render(template, item.name, item.all_artists, licence_for_track(item, table))
