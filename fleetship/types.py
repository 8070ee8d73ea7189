"""
Core types for fleetship.

Log types and the immutable Report passed from the ingestion front door
into the export subsystem.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class LogType(Enum):
    """Kinds of agent report."""

    STATUS = "status"
    """Periodic health/status logs, delivered as a JSON array."""

    RESULT = "result"
    """Scheduled-query results, delivered as a JSON array."""

    QUERY = "query"
    """On-demand query result, delivered as a single JSON object."""


def log_type_string(log_type: LogType | str) -> str:
    """
    Return the wire string for a log type.

    Unknown strings pass through unchanged so that backends can
    decide how to reject them.

    Example:
        >>> log_type_string(LogType.STATUS)
        'status'
        >>> log_type_string("custom")
        'custom'
    """
    if isinstance(log_type, LogType):
        return log_type.value
    return str(log_type)


@dataclass(frozen=True)
class Report:
    """
    One agent report on its way to the configured sinks.

    Attributes:
        log_type: Wire string of the report type.
        environment: Environment the agent is enrolled in.
        uuid: Agent identifier, stable per device.
        data: Raw payload bytes, opaque except to the batching logger.
        query_name: Query name (query reports only).
        status: Query status code (query reports only).
    """

    log_type: str
    environment: str
    uuid: str
    data: bytes
    query_name: str | None = None
    status: int | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "log_type", log_type_string(self.log_type))
        if isinstance(self.data, str):
            object.__setattr__(self, "data", self.data.encode("utf-8"))

    @classmethod
    def query(
        cls,
        data: bytes,
        environment: str,
        uuid: str,
        name: str,
        status: int,
    ) -> Report:
        """Create an on-demand query report."""
        return cls(
            log_type=LogType.QUERY.value,
            environment=environment,
            uuid=uuid,
            data=data,
            query_name=name,
            status=status,
        )

    @property
    def is_query(self) -> bool:
        """Whether this is an on-demand query report."""
        return self.log_type == LogType.QUERY.value

    @property
    def size(self) -> int:
        """Payload length in bytes."""
        return len(self.data)
