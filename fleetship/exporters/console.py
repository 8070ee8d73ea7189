"""
Console exporter.

Writes one structured log entry per record. Useful for development and
as the fallback backend when no other logger is configured.
"""

from __future__ import annotations

import logging

from fleetship.config import LoggerKind, SettingsProvider
from fleetship.context import ExportContext
from fleetship.exceptions import UnsupportedLogTypeError
from fleetship.exporters.base import BaseExporter
from fleetship.types import LogType, log_type_string

logger = logging.getLogger(__name__)

CONSOLE_LOGGER_NAME = "fleetship.console"


class ConsoleExporter(BaseExporter):
    """
    Log every record to the console logger.

    Each entry carries the fields ``type``, ``environment``, ``uuid`` and
    ``size`` as log record attributes, and the raw content in the message.

    Example:
        >>> exporter = ConsoleExporter()
        >>> exporter.export(ExportContext(), "status", b'[{"a": 1}]', "prod", "abc")
    """

    def __init__(self, output: logging.Logger | None = None) -> None:
        """
        Initialize the console exporter.

        Args:
            output: Logger to write to (default: "fleetship.console").
        """
        super().__init__(LoggerKind.STDOUT.value)
        self.output = output or logging.getLogger(CONSOLE_LOGGER_NAME)

    def export(
        self,
        ctx: ExportContext,
        log_type: LogType | str,
        data: bytes,
        environment: str,
        uuid: str,
    ) -> None:
        if not self.is_enabled():
            return

        kind = log_type_string(log_type)
        if kind == LogType.STATUS.value:
            label = "Status"
        elif kind == LogType.RESULT.value:
            label = "Result"
        else:
            raise UnsupportedLogTypeError(kind, self.name)

        content = data.decode("utf-8", errors="replace")
        self.output.info(
            f"{label}: {environment}:{uuid} - {len(data)} bytes [{content}]",
            extra={
                "type": kind,
                "environment": environment,
                "uuid": uuid,
                "size": len(data),
            },
        )

    def export_query(
        self,
        ctx: ExportContext,
        data: bytes,
        environment: str,
        uuid: str,
        name: str,
        status: int,
    ) -> None:
        if not self.is_enabled():
            return

        content = data.decode("utf-8", errors="replace")
        self.output.info(
            f"Query: {name}:{status} - {environment}:{uuid} - {len(data)} bytes [{content}]",
            extra={
                "type": LogType.QUERY.value,
                "environment": environment,
                "uuid": uuid,
                "query_name": name,
                "status": status,
                "size": len(data),
            },
        )

    def configure(self, settings: SettingsProvider) -> None:
        super().configure(settings)
        logger.debug("No further configuration needed for stdout exporter")
