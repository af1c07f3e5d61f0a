"""
Utility functions and helpers for Spotify Current Song
Common functions for file handling, string processing and local network checks
"""

import socket
from pathlib import Path
from typing import Union


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure directory exists, create if necessary

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path_obj = Path(path)
    path_obj.mkdir(parents=True, exist_ok=True)
    return path_obj


def truncate_string(text: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate string to maximum length with suffix

    Args:
        text: Original text
        max_length: Maximum length including suffix
        suffix: Suffix to add when truncating

    Returns:
        Truncated string
    """
    if len(text) <= max_length:
        return text

    truncate_length = max_length - len(suffix)
    if truncate_length <= 0:
        return suffix[:max_length]

    return text[:truncate_length] + suffix


def format_interval(milliseconds: Union[int, float]) -> str:
    """
    Format a millisecond interval for display

    Args:
        milliseconds: Interval in milliseconds

    Returns:
        "750ms" below one second, otherwise seconds with one decimal ("3.0s")
    """
    if milliseconds < 1000:
        return f"{int(milliseconds)}ms"
    return f"{milliseconds / 1000:.1f}s"


def is_port_available(port: int, host: str = 'localhost') -> bool:
    """
    Check whether a local TCP port can be bound

    Args:
        port: Port number to test
        host: Interface to bind on

    Returns:
        True if binding succeeded, False if the port is in use or not allowed
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind((host, port))
            return True
    except OSError:
        return False
