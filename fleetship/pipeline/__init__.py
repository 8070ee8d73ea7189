"""
Ingestion pipeline helpers.

Components:
    - KafkaBatchLogger: Splits agent payloads into per-entry Kafka records
    - parse_logs: Decodes a payload into its logical entries
    - create_debug_http_logger: Rotating JSON-lines log for HTTP debugging
"""

from fleetship.pipeline.debug import (
    JSONLineFormatter,
    RotationConfig,
    create_debug_http_logger,
)
from fleetship.pipeline.kafka_logger import KafkaBatchLogger, parse_logs

__all__ = [
    "KafkaBatchLogger",
    "parse_logs",
    "RotationConfig",
    "JSONLineFormatter",
    "create_debug_http_logger",
]
