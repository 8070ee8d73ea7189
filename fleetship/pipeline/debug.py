"""
Debug logger for HTTP traffic reaching the ingestion service.

Writes JSON lines to a size-rotated file. Rotated files can be gzipped
and only the newest max_backups of them are kept.
"""

from __future__ import annotations

import gzip
import json
import logging
import logging.handlers
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# LogRecord attributes that are not user-supplied fields.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", None, None)).keys()
) | {"message", "asctime"}


@dataclass
class RotationConfig:
    """
    Rotation settings for the debug HTTP log.

    Attributes:
        max_size_mb: Rotate once the file reaches this size.
        max_backups: Number of rotated files to keep.
        compress: Whether to gzip rotated files.
    """

    max_size_mb: float = 25.0
    max_backups: int = 5
    compress: bool = True

    @property
    def max_bytes(self) -> int:
        return int(self.max_size_mb * 1024 * 1024)


class JSONLineFormatter(logging.Formatter):
    """Format records as one JSON object per line, including extra fields."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "caller": f"{record.filename}:{record.lineno}",
            "message": record.getMessage(),
        }
        for key, value in vars(record).items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                entry[key] = value
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _gzip_rotator(source: str, dest: str) -> None:
    with open(source, "rb") as f_in, gzip.open(dest, "wb") as f_out:
        shutil.copyfileobj(f_in, f_out)
    os.remove(source)


def create_debug_http_logger(
    filename: str | Path,
    config: RotationConfig | None = None,
    name: str = "fleetship.debug_http",
) -> logging.Logger:
    """
    Create the debug HTTP logger.

    The logger does not propagate, so debug traffic never reaches the
    service's main log.

    Args:
        filename: Path of the active log file.
        config: Rotation settings (default: RotationConfig()).
        name: Logger name.

    Returns:
        A logger writing JSON lines to filename.

    Example:
        >>> debug_http = create_debug_http_logger("/var/log/fleet/debug-http.log")
        >>> debug_http.info("request", extra={"path": "/log", "size": 512})
    """
    config = config or RotationConfig()
    path = Path(filename)
    path.parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        path,
        maxBytes=config.max_bytes,
        backupCount=config.max_backups,
        encoding="utf-8",
    )
    if config.compress:
        handler.namer = lambda default: f"{default}.gz"
        handler.rotator = _gzip_rotator
    handler.setFormatter(JSONLineFormatter())

    debug_logger = logging.getLogger(name)
    for existing in list(debug_logger.handlers):
        debug_logger.removeHandler(existing)
        existing.close()
    debug_logger.addHandler(handler)
    debug_logger.setLevel(logging.DEBUG)
    debug_logger.propagate = False
    return debug_logger
