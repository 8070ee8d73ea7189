"""
Batching Kafka logger used by the ingestion pipeline.

Agents deliver status and result logs as JSON arrays and on-demand query
results as a single JSON object. This logger splits a payload into one
Kafka record per logical entry and sends them as one batch keyed by the
agent uuid.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from typing import Any

from aiokafka import AIOKafkaProducer

from fleetship.broker import KafkaClient, KafkaRecord, ProduceResults
from fleetship.config import KafkaConfiguration, LoggerKind, SettingsProvider
from fleetship.context import ExportContext
from fleetship.exceptions import FleetshipError, ParseError, TransportError
from fleetship.types import LogType, log_type_string

logger = logging.getLogger(__name__)


def parse_logs(log_type: LogType | str, data: bytes) -> list[Any]:
    """
    Split a payload into its logical entries.

    Query payloads are one JSON value and yield exactly one entry.
    Status and result payloads are JSON arrays and yield one entry per
    element.

    Args:
        log_type: Declared type of the payload.
        data: Raw payload bytes.

    Returns:
        The decoded entries.

    Raises:
        ParseError: If the payload is not valid JSON for its type.

    Example:
        >>> parse_logs("result", b'[{"pid": "1"}, {"pid": "2"}]')
        [{'pid': '1'}, {'pid': '2'}]
    """
    kind = log_type_string(log_type)
    try:
        decoded = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ParseError(kind, str(e), size=len(data)) from e

    if kind == LogType.QUERY.value:
        return [decoded]

    if not isinstance(decoded, list):
        raise ParseError(
            kind, f"expected a JSON array, got {type(decoded).__name__}", size=len(data)
        )
    return decoded


def _encode(entry: Any) -> bytes:
    return json.dumps(entry, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class KafkaBatchLogger:
    """
    Ship ingestion payloads to Kafka, one record per log entry.

    All records from one payload share the topic and the partition key
    (the agent uuid) and are produced as one batch. Only the batch's
    first error is reported.

    Attributes:
        config: Kafka connection settings.
        enabled: Whether send() does anything.
        debug: Log a line per payload sent.

    Example:
        >>> shipper = KafkaBatchLogger(KafkaConfiguration(
        ...     bootstrap_servers="broker:9092", topic="osquery-logs",
        ... ))
        >>> shipper.send("result", b'[{"pid": "1"}]', "prod-1", "abc-123")
        1
        >>> shipper.close()
    """

    def __init__(
        self,
        config: KafkaConfiguration,
        client: KafkaClient | None = None,
        producer_factory: Callable[..., Any] = AIOKafkaProducer,
    ) -> None:
        """
        Initialize the logger.

        Args:
            config: Broker, topic and auth settings.
            client: Pre-built client; built from config when None.
            producer_factory: Producer class handed to a new client.

        Raises:
            ConfigurationError: If the SASL or TLS settings are unusable.
        """
        self.config = config
        self._enabled = True
        self._debug = False
        self._state_lock = threading.Lock()
        self._client = client if client is not None else KafkaClient(config, producer_factory)

    @property
    def topic(self) -> str:
        return self.config.topic

    @property
    def enabled(self) -> bool:
        with self._state_lock:
            return self._enabled

    @enabled.setter
    def enabled(self, value: bool) -> None:
        with self._state_lock:
            self._enabled = bool(value)

    @property
    def debug(self) -> bool:
        with self._state_lock:
            return self._debug

    @debug.setter
    def debug(self, value: bool) -> None:
        with self._state_lock:
            self._debug = bool(value)

    def settings(self, provider: SettingsProvider) -> None:
        """Apply the enabled and debug flags from live settings."""
        enabled = provider.exporter_enabled(LoggerKind.KAFKA.value)
        if enabled is not None:
            self.enabled = enabled
        self.debug = provider.debug_enabled(LoggerKind.KAFKA.value)

    def build_records(
        self, log_type: LogType | str, data: bytes, uuid: str
    ) -> list[KafkaRecord]:
        """
        Turn a payload into the records to produce.

        Raises:
            ParseError: If the payload is malformed for its type.
        """
        key = uuid.encode("utf-8")
        return [
            KafkaRecord(
                topic=self.topic,
                key=key,
                value=_encode(entry),
            )
            for entry in parse_logs(log_type, data)
        ]

    def produce(
        self,
        ctx: ExportContext,
        log_type: LogType | str,
        data: bytes,
        environment: str,
        uuid: str,
    ) -> ProduceResults:
        """
        Parse a payload and produce its records as one batch.

        Args:
            ctx: Call context.
            log_type: Declared type of the payload.
            data: Raw payload bytes.
            environment: Environment of the agent.
            uuid: Agent identifier, used as the partition key.

        Returns:
            Per-record results. Empty if the payload held no entries.

        Raises:
            ParseError: If the payload is malformed; nothing is sent.
            TransportError: With the batch's first error.
            ExportCancelledError: If the context finishes first.
        """
        kind = log_type_string(log_type)
        records = self.build_records(kind, data, uuid)
        if not records:
            logger.warning(f"Unexpected record count of 0 from {uuid}:{environment}")
            return ProduceResults()

        results = self._client.produce_sync(ctx, records)
        error = results.first_error()
        if error is not None:
            raise TransportError(
                f"failed to produce messages to kafka topic '{self.topic}': {error}",
                exporter=LoggerKind.KAFKA.value,
                details={"records": len(records), "log_type": kind},
            ) from error

        if self.debug:
            logger.info(
                f"Sent {len(records)} {kind} messages to kafka topic '{self.topic}' "
                f"from {uuid}:{environment}"
            )
        return results

    def send(
        self,
        log_type: LogType | str,
        data: bytes,
        environment: str,
        uuid: str,
        ctx: ExportContext | None = None,
    ) -> int:
        """
        Pipeline entry point: produce a payload and log any failure.

        Returns:
            Number of records delivered; 0 when disabled, dropped or failed.
        """
        if not self.enabled:
            return 0

        if self.debug:
            logger.info(
                f"Sending {len(data)} bytes to Kafka topic {self.topic} "
                f"for {environment} - {uuid}"
            )

        try:
            results = self.produce(
                ctx or ExportContext.background(), log_type, data, environment, uuid
            )
        except ParseError as e:
            logger.error(f"Failed to parse logs, dropping payload: {e}")
            return 0
        except FleetshipError as e:
            logger.error(f"Failed to send logs to Kafka: {e}")
            return 0
        return len(results)

    def close(self) -> None:
        """Flush and release the producer."""
        self._client.close()
