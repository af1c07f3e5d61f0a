"""
Polling package
Background loop that keeps the current song file up to date and the
orchestrator owning its lifetime
"""

from .poller import PollingLoop, TRANSIENT_ERRORS
from .extractor import SongExtractor

__all__ = [
    'PollingLoop',
    'TRANSIENT_ERRORS',
    'SongExtractor'
]
