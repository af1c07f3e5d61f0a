"""Test utilities and helpers"""

import logging
import socket

import pytest

from spotify_current_song.utils.helpers import (
    ensure_directory,
    truncate_string,
    format_interval,
    is_port_available
)
from spotify_current_song.utils.logger import (
    ConsoleMessageFilter,
    ColoredFormatter,
    get_current_log_file,
    get_logger,
    parse_size,
    setup_logging
)


class TestHelpers:
    """Test helper functions"""

    def test_ensure_directory(self, temp_dir):
        """Test nested directories are created"""
        path = ensure_directory(temp_dir / 'a' / 'b')
        assert path.is_dir()
        assert ensure_directory(path) == path

    def test_truncate_string(self):
        """Test string truncation"""
        assert truncate_string("Nightcall", 20) == "Nightcall"
        assert truncate_string("Nightcall by Kavinsky", 12) == "Nightcall..."
        assert truncate_string("Nightcall", 2) == ".."

    def test_format_interval(self):
        """Test interval formatting"""
        assert format_interval(750) == "750ms"
        assert format_interval(3000) == "3.0s"
        assert format_interval(1500) == "1.5s"

    def test_is_port_available(self):
        """Test a bound port is reported as unavailable"""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.bind(('localhost', 0))
            s.listen(1)
            port = s.getsockname()[1]
            assert is_port_available(port) is False

        assert is_port_available(0) is True


class TestLogger:
    """Test logging configuration"""

    def test_parse_size(self):
        """Test size parsing"""
        assert parse_size("10MB") == 10 * 1024 * 1024
        assert parse_size("500kb") == 500 * 1024
        assert parse_size("1.5 KB") == 1536
        with pytest.raises(ValueError):
            parse_size("big")

    def test_console_filter(self):
        """Test only user-facing messages reach the console"""
        console_filter = ConsoleMessageFilter()
        technical = logging.LogRecord('x', logging.INFO, __file__, 1, 'tick', None, None)
        warning = logging.LogRecord('x', logging.WARNING, __file__, 1, 'careful', None, None)
        marked = logging.LogRecord('x', logging.INFO, __file__, 1, 'Now playing', None, None)
        marked.console_output = True

        assert console_filter.filter(technical) is False
        assert console_filter.filter(warning) is True
        assert console_filter.filter(marked) is True
        assert ConsoleMessageFilter(verbose=True).filter(technical) is True

    def test_colored_formatter_keeps_record(self):
        """Test coloring does not leak into the original record"""
        record = logging.LogRecord('x', logging.ERROR, __file__, 1, 'failed %s', ('twice',), None)
        formatted = ColoredFormatter(use_colors=True).format(record)

        assert 'failed twice' in formatted
        assert record.levelname == 'ERROR'
        assert ColoredFormatter(use_colors=False).format(record) == 'failed twice'

    def test_console_info_marks_record(self, caplog):
        """Test console_info messages are flagged for the console"""
        logger = get_logger('spotify_current_song.tests')

        with caplog.at_level(logging.INFO, logger='spotify_current_song.tests'):
            logger.console_info("Authorization successful!")

        assert caplog.records[-1].getMessage() == "Authorization successful!"
        assert caplog.records[-1].console_output is True

    def test_setup_logging_file(self, temp_dir):
        """Test file logging writes technical messages"""
        log_file = temp_dir / 'logs' / 'current-song.log'
        try:
            setup_logging(level="DEBUG", log_file=str(log_file), console_output=False)
            get_logger('spotify_current_song.tests').debug("technical detail")

            assert get_current_log_file() == log_file
            for handler in logging.getLogger().handlers:
                handler.flush()
            assert "technical detail" in log_file.read_text(encoding='utf-8')
        finally:
            setup_logging(console_output=False)

        assert get_current_log_file() is None
