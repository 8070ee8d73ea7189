"""
Custom exceptions for fleetship.

This module defines the exception hierarchy for the export subsystem.
Construction-time problems surface as ConfigurationError, per-call
transmission problems as TransportError, and fan-out calls collect
per-backend failures into an AggregateExportError.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class FleetshipError(Exception):
    """
    Base exception for all fleetship errors.

    Attributes:
        message: Human-readable error description.
        details: Additional context about the error.

    Example:
        >>> try:
        ...     exporter.export(ctx, "status", data, "prod", uuid)
        ... except FleetshipError as e:
        ...     logger.error(f"Export failed: {e}")
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(FleetshipError):
    """
    Raised when a backend cannot be built from its configuration.

    Covers missing credentials, unreadable certificate files, unsupported
    authentication mechanisms and unreadable settings files. A backend
    that failed with this error is unusable and must not be registered.

    Example:
        >>> raise ConfigurationError(
        ...     "SASL mechanism requires a username",
        ...     backend="kafka",
        ... )
    """

    def __init__(
        self,
        message: str,
        backend: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.backend = backend
        merged = dict(details or {})
        if backend:
            merged["backend"] = backend
        super().__init__(message, merged)


class TransportError(FleetshipError):
    """
    Raised when a transmit call fails on the wire.

    Network, authentication and remote-service failures all land here.
    The original library error is chained as ``__cause__``.

    Attributes:
        exporter: Name of the backend that failed.
    """

    def __init__(
        self,
        message: str,
        exporter: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.exporter = exporter
        merged = dict(details or {})
        merged["exporter"] = exporter
        super().__init__(message, merged)


class ExportCancelledError(FleetshipError):
    """
    Raised when an export call's context is cancelled or its deadline passes.

    Attributes:
        reason: Either "cancelled" or "deadline exceeded".
        elapsed: Seconds elapsed since the context started.
    """

    def __init__(self, reason: str = "cancelled", elapsed: float | None = None) -> None:
        self.reason = reason
        self.elapsed = elapsed
        details: dict[str, Any] = {"reason": reason}
        if elapsed is not None:
            details["elapsed"] = round(elapsed, 3)
        super().__init__(f"Export context {reason}", details)


class ParseError(FleetshipError):
    """
    Raised when a payload is not valid JSON for its declared log type.

    The whole payload is dropped; nothing derived from it is emitted.
    """

    def __init__(self, log_type: str, reason: str, size: int = 0) -> None:
        self.log_type = log_type
        self.reason = reason
        super().__init__(
            f"Error parsing {log_type} data: {reason}",
            {"log_type": log_type, "size": size},
        )


class UnsupportedLogTypeError(FleetshipError):
    """Raised when a backend is handed a log type it does not know."""

    def __init__(self, log_type: str, exporter: str) -> None:
        self.log_type = log_type
        super().__init__(
            f"Unsupported log type: {log_type}",
            {"log_type": log_type, "exporter": exporter},
        )


@dataclass(frozen=True)
class ExporterFailure:
    """A single backend failure inside a fan-out call."""

    name: str
    error: BaseException

    def __str__(self) -> str:
        return f"exporter {self.name}: {self.error}"


class AggregateExportError(FleetshipError):
    """
    Raised when one or more backends of a fan-out call failed.

    Every enabled backend was still invoked; this error only reports
    which of them failed and why.

    Attributes:
        operation: "export" or "export_query".
        failures: One entry per failing backend, in backend order.

    Example:
        >>> try:
        ...     multi.export(ctx, "status", data, "prod", uuid)
        ... except AggregateExportError as e:
        ...     print(e.names)
        ['s3']
    """

    def __init__(self, operation: str, failures: list[ExporterFailure]) -> None:
        self.operation = operation
        self.failures = list(failures)
        summary = "; ".join(str(f) for f in self.failures)
        super().__init__(
            f"{operation} errors: [{summary}]",
            {"failed": self.names},
        )

    @property
    def names(self) -> list[str]:
        """Names of the failing backends."""
        return [f.name for f in self.failures]
