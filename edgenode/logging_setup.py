"""Logging configuration for the EdgeNode wallet runner.

Sets up a dual-handler logging pipeline:

1. **Console** -- :class:`SafeStreamHandler` that falls back to
   replacement encoding when the terminal cannot print a character
   (wallet addresses are ASCII, remote error bodies may not be).
2. **File** -- :class:`CompressedRotatingFileHandler` writing to
   ``logs/edgenode.log`` with automatic gzip rotation (10 MiB per
   file, 5 backups).

Core components never import a global logger for output they own;
they accept a :class:`logging.Logger` and fall back to their module
logger.  This module is the single place where handlers are attached.

Usage::

    from edgenode.logging_setup import setup_logging
    setup_logging("DEBUG")
"""

import gzip
import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional

from edgenode.config import LOGS_DIR

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s - %(message)s'
LOG_FILE_NAME = "edgenode.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUP_COUNT = 5


class CompressedRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that gzip-compresses rotated log files.

    Rotated files are renamed with a ``.gz`` suffix and compressed
    in-place, keeping disk usage low for a runner that never exits.
    """

    def rotation_filename(self, default_name: str) -> str:
        """Append ``.gz`` to the rotated file name."""
        return f"{default_name}.gz"

    def rotate(self, source: str, dest: str) -> None:
        """Compress *source* into *dest* using gzip, then remove *source*.

        Args:
            source: Path to the uncompressed log file.
            dest: Destination path for the compressed file.
        """
        with open(source, 'rb') as f_in:
            with gzip.open(dest, 'wb') as f_out:
                shutil.copyfileobj(f_in, f_out)
        os.remove(source)


class SafeStreamHandler(logging.StreamHandler):
    """StreamHandler that never raises on unencodable output."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            stream = self.stream
            try:
                stream.write(msg + self.terminator)
            except UnicodeEncodeError:
                encoding = getattr(stream, "encoding", None) or "ascii"
                safe_msg = msg.encode(
                    encoding, errors='replace',
                ).decode(encoding)
                stream.write(safe_msg + self.terminator)
            self.flush()
        except Exception:
            self.handleError(record)


def setup_logging(
    log_level: str = "INFO", log_file: Optional[str] = None,
) -> logging.Logger:
    """Configure the root logger with console and file handlers.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        log_level: Logging level name (e.g. ``"DEBUG"``,
            ``"INFO"``, ``"WARNING"``).  Unknown names fall back to
            ``INFO``.
        log_file: Optional override for the log file path.  Defaults
            to ``logs/edgenode.log`` under the project root.

    Returns:
        The configured root logger.
    """
    level = getattr(logging, log_level.upper(), logging.INFO)
    if not isinstance(level, int):
        level = logging.INFO

    log_path = log_file or os.path.join(str(LOGS_DIR), LOG_FILE_NAME)
    log_dir = os.path.dirname(log_path)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    file_handler = CompressedRotatingFileHandler(
        log_path,
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding='utf-8',
    )
    stream_handler = SafeStreamHandler(sys.stdout)

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[file_handler, stream_handler],
        force=True,
    )
    # Per-attempt reporting comes from the executor
    logging.getLogger("aiohttp").setLevel(max(level, logging.WARNING))
    return logging.getLogger()
