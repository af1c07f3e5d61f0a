"""
Current song file writer

Writes the rendered text to the output file, skipping writes that would not
change the file and escalating repeated I/O failures to a fatal error.
"""

import os
import threading
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..exceptions import FileWriteError
from ..utils.helpers import ensure_directory
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WriteResult(Enum):
    """Outcome of a single write request"""
    WRITTEN = "written"
    SKIPPED = "skipped"
    FAILED = "failed"
    FATAL = "fatal"


class FileWriter:
    """
    Debounced writer for the current song file

    The file is replaced atomically (temporary file + rename) so readers such
    as stream overlays never see a half written line. The text is stored as
    UTF-8 without a trailing newline.

    Attributes:
        path: Output file path
        max_failures: Consecutive failures that make the writer fatal
        last_written_text: Text of the last successful write
        consecutive_failures: Failed writes since the last success
    """

    def __init__(self, path: Union[str, Path], max_failures: int = 5):
        if max_failures < 1:
            raise ValueError(f"max_failures must be at least 1, got {max_failures}")

        self.path = Path(path)
        self.max_failures = max_failures
        self.last_written_text: Optional[str] = None
        self.consecutive_failures = 0
        self._fatal = False
        self._lock = threading.Lock()

    @property
    def is_fatal(self) -> bool:
        return self._fatal

    def write(self, text: str) -> WriteResult:
        """
        Write text to the output file unless it is already there

        Args:
            text: Text to write, an empty string clears the file

        Returns:
            WRITTEN, SKIPPED, FAILED, or FATAL when this failure reached the limit

        Raises:
            FileWriteError: If the writer already became fatal
        """
        with self._lock:
            if self._fatal:
                raise FileWriteError(
                    f"Writing to {self.path} was abandoned after {self.max_failures} consecutive failures",
                    details={'path': str(self.path)}
                )

            if text == self.last_written_text:
                return WriteResult.SKIPPED

            try:
                self._persist(text)
            except OSError as e:
                self.consecutive_failures += 1
                if self.consecutive_failures >= self.max_failures:
                    self._fatal = True
                    logger.critical(
                        f"Failed to write {self.path} {self.consecutive_failures} times in a row, giving up: {e}"
                    )
                    return WriteResult.FATAL

                logger.warning(
                    f"Failed to write {self.path} "
                    f"({self.consecutive_failures}/{self.max_failures}): {e}"
                )
                return WriteResult.FAILED

            self.last_written_text = text
            self.consecutive_failures = 0
            logger.debug(f"Wrote {len(text)} characters to {self.path}")
            return WriteResult.WRITTEN

    def _persist(self, text: str) -> None:
        ensure_directory(self.path.parent)
        tmp_path = self.path.with_name(self.path.name + '.tmp')
        try:
            # newline='' keeps the text byte-for-byte on every platform
            with open(tmp_path, 'w', encoding='utf-8', newline='') as f:
                f.write(text)
            os.replace(tmp_path, self.path)
        except OSError:
            if tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    logger.debug(f"Could not remove temporary file {tmp_path}")
            raise

    def reset(self) -> None:
        """Forget the last written text and the failure count"""
        with self._lock:
            self.last_written_text = None
            self.consecutive_failures = 0
