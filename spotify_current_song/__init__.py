"""
Spotify Current Song

Writes the track or episode currently playing on a Spotify account into a
text file, for stream overlays and similar tools.
"""

__version__ = "1.0.0"
