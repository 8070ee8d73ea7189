"""
Fleetship: telemetry egress for fleet device agents.

Fleetship takes the status logs, result logs and on-demand query results
that endpoint agents report and ships them to one or more storage and
streaming backends: the console, Amazon S3 and Apache Kafka.

Basic Usage:
    >>> from fleetship import ExportContext, ServiceConfig, StaticSettings
    >>> from fleetship import create_service_exporter
    >>>
    >>> service = create_service_exporter(
    ...     ServiceConfig(logger="s3", logger_file="/etc/fleet/s3.json", always_log=True),
    ...     StaticSettings(),
    ... )
    >>>
    >>> with ExportContext(timeout=5) as ctx:
    ...     service.export(ctx, "status", b'[{"line": 1}]', "prod", "abc-123")
"""

__version__ = "0.1.0"

from fleetship.broker import KafkaClient, KafkaRecord, ProduceResult, ProduceResults
from fleetship.config import (
    KafkaConfiguration,
    LoggerKind,
    S3Configuration,
    SASLConfiguration,
    ServiceConfig,
    SettingsProvider,
    StaticSettings,
    load_s3_config,
)
from fleetship.context import ExportContext
from fleetship.exceptions import (
    AggregateExportError,
    ConfigurationError,
    ExportCancelledError,
    ExporterFailure,
    FleetshipError,
    ParseError,
    TransportError,
    UnsupportedLogTypeError,
)
from fleetship.exporters import (
    BaseExporter,
    ConsoleExporter,
    Exporter,
    ExporterFactory,
    KafkaExporter,
    MultiExporter,
    S3Exporter,
    ServiceExporter,
    create_service_exporter,
)
from fleetship.pipeline import KafkaBatchLogger, RotationConfig, create_debug_http_logger
from fleetship.types import LogType, Report

__all__ = [
    # Version
    "__version__",
    # Types
    "LogType",
    "Report",
    "ExportContext",
    # Configuration
    "LoggerKind",
    "ServiceConfig",
    "S3Configuration",
    "KafkaConfiguration",
    "SASLConfiguration",
    "SettingsProvider",
    "StaticSettings",
    "load_s3_config",
    # Exporters
    "Exporter",
    "BaseExporter",
    "ConsoleExporter",
    "S3Exporter",
    "KafkaExporter",
    "MultiExporter",
    "ServiceExporter",
    "ExporterFactory",
    "create_service_exporter",
    # Kafka
    "KafkaClient",
    "KafkaRecord",
    "ProduceResult",
    "ProduceResults",
    "KafkaBatchLogger",
    # Logging
    "RotationConfig",
    "create_debug_http_logger",
    # Exceptions
    "FleetshipError",
    "ConfigurationError",
    "TransportError",
    "ExportCancelledError",
    "ParseError",
    "UnsupportedLogTypeError",
    "ExporterFailure",
    "AggregateExportError",
]
