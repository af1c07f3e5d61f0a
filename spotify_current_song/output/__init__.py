"""
Output package
Formatting of the playing item and writing of the current song file
"""

from .formatter import (
    render,
    resolve_licence,
    licence_for_track,
    describe,
    DEFAULT_LICENCE,
    EPISODE_LICENCE
)
from .writer import FileWriter, WriteResult

__all__ = [
    # Formatter exports
    'render',
    'resolve_licence',
    'licence_for_track',
    'describe',
    'DEFAULT_LICENCE',
    'EPISODE_LICENCE',

    # Writer exports
    'FileWriter',
    'WriteResult'
]
