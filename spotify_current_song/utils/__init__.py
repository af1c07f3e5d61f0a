"""
Utilities package
Logging setup and small helper functions
"""

from .logger import (
    get_logger,
    configure_from_settings,
    setup_logging,
    get_current_log_file,
    parse_size
)
from .helpers import (
    ensure_directory,
    truncate_string,
    format_interval,
    is_port_available
)

__all__ = [
    # Logger exports
    'get_logger',
    'configure_from_settings',
    'setup_logging',
    'get_current_log_file',
    'parse_size',

    # Helper exports
    'ensure_directory',
    'truncate_string',
    'format_interval',
    'is_port_available'
]
