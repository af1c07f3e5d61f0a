"""
Data models for the Spotify "currently playing" endpoint

The endpoint reports either a track or a podcast episode. Both are reduced
to the few fields the output file needs. Nothing playing (no content, paused
playback, adverts, unknown item types) is represented by None.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union


@dataclass(frozen=True)
class Track:
    """
    Music track currently playing

    Attributes:
        name: Track title
        artist_names: Artist names in the order Spotify lists them
    """
    name: str
    artist_names: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any]) -> 'Track':
        """
        Build a Track from a Spotify track object

        Local files can carry artists without a name; those are skipped.
        """
        artists = tuple(
            artist['name'] for artist in data.get('artists') or []
            if artist and artist.get('name')
        )
        return cls(name=data.get('name') or '', artist_names=artists)

    @property
    def primary_artist(self) -> str:
        """First listed artist, empty if unknown"""
        return self.artist_names[0] if self.artist_names else ''

    @property
    def all_artists(self) -> str:
        """All artists joined with a comma"""
        return ', '.join(self.artist_names)


@dataclass(frozen=True)
class Episode:
    """
    Podcast episode currently playing

    Attributes:
        name: Episode title
        show_name: Name of the show the episode belongs to
    """
    name: str
    show_name: str = ''

    @classmethod
    def from_spotify_data(cls, data: Dict[str, Any]) -> 'Episode':
        show = data.get('show') or {}
        return cls(name=data.get('name') or '', show_name=show.get('name') or '')


PlaybackItem = Union[Track, Episode]


def parse_currently_playing(payload: Optional[Dict[str, Any]]) -> Optional[PlaybackItem]:
    """
    Convert a currently-playing response into a playback item

    Args:
        payload: JSON body of the endpoint, None for an empty (204) response

    Returns:
        Track, Episode, or None when nothing is playing
    """
    if not payload or not payload.get('is_playing'):
        return None

    item = payload.get('item')
    if not item:
        return None

    item_type = payload.get('currently_playing_type') or item.get('type')
    if item_type == 'track':
        return Track.from_spotify_data(item)
    if item_type == 'episode':
        return Episode.from_spotify_data(item)
    return None
