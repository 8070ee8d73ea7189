"""
Export backends for fleetship.

This module provides the exporters that forward agent reports to
external sinks:

- ConsoleExporter: structured log line per record
- S3Exporter: one object per record
- KafkaExporter: one record per payload, keyed by agent
- MultiExporter: parallel fan-out to several exporters
- ServiceExporter: primary exporter plus optional always-store copy

Example:
    >>> from fleetship.exporters import ExporterFactory, ServiceExporter
    >>>
    >>> primary = ExporterFactory.create(ServiceConfig(logger="stdout"))
    >>> service = ServiceExporter(primary)
"""

from __future__ import annotations

from fleetship.exporters.base import BaseExporter, Exporter
from fleetship.exporters.console import ConsoleExporter
from fleetship.exporters.factory import (
    ExporterFactory,
    ServiceExporter,
    create_service_exporter,
)
from fleetship.exporters.kafka import KafkaExporter
from fleetship.exporters.multi import MultiExporter
from fleetship.exporters.s3 import S3Exporter, detect_content_type

__all__ = [
    # Base
    "Exporter",
    "BaseExporter",
    # Backends
    "ConsoleExporter",
    "S3Exporter",
    "KafkaExporter",
    "MultiExporter",
    # Service
    "ServiceExporter",
    "ExporterFactory",
    "create_service_exporter",
    # Helpers
    "detect_content_type",
]
