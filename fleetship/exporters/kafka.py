"""
Apache Kafka exporter for fleetship.

Sends each raw payload as one record keyed by the agent uuid, so every
record from a device lands in the same partition in order. Report type,
environment and, for query results, the query name and status travel as
record headers next to the payload.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from aiokafka import AIOKafkaProducer

from fleetship.broker import KafkaClient, KafkaRecord
from fleetship.config import KafkaConfiguration, LoggerKind, SettingsProvider
from fleetship.context import ExportContext
from fleetship.exceptions import ExportCancelledError, TransportError
from fleetship.exporters.base import BaseExporter
from fleetship.types import LogType, log_type_string

logger = logging.getLogger(__name__)

HEADER_LOG_TYPE = "logType"
HEADER_ENVIRONMENT = "environment"
HEADER_QUERY_NAME = "queryName"
HEADER_STATUS = "status"


class KafkaExporter(BaseExporter):
    """
    Export records to a single Kafka topic.

    Each call dispatches one record and then waits for the broker's
    acknowledgement or for the call's context to finish, whichever
    comes first. Call close() at shutdown to flush and release the
    producer.

    Example:
        >>> exporter = KafkaExporter(KafkaConfiguration(
        ...     bootstrap_servers="broker:9092",
        ...     topic="osquery-logs",
        ...     sasl=SASLConfiguration("SCRAM-SHA-512", "svc", "secret"),
        ... ))
        >>> exporter.export(ExportContext(timeout=5), "status", data, "prod", uuid)
        >>> exporter.close()
    """

    def __init__(
        self,
        config: KafkaConfiguration,
        client: KafkaClient | None = None,
        producer_factory: Callable[..., Any] = AIOKafkaProducer,
    ) -> None:
        """
        Initialize the Kafka exporter.

        Args:
            config: Broker, topic and auth settings.
            client: Pre-built client; built from config when None.
            producer_factory: Producer class handed to a new client.

        Raises:
            ConfigurationError: If the SASL or TLS settings are unusable.
        """
        super().__init__(LoggerKind.KAFKA.value)
        self.config = config
        self._client = client if client is not None else KafkaClient(config, producer_factory)

    @property
    def topic(self) -> str:
        return self.config.topic

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
        if self.debug:
            logger.debug(
                f"Sending {len(data)} bytes of {kind} data to Kafka topic {self.topic} "
                f"for {environment}:{uuid}"
            )

        record = KafkaRecord(
            topic=self.topic,
            key=uuid.encode("utf-8"),
            value=data,
            headers=[
                (HEADER_LOG_TYPE, kind.encode("utf-8")),
                (HEADER_ENVIRONMENT, environment.encode("utf-8")),
            ],
        )
        self._deliver(ctx, record, uuid, "failed to produce message to Kafka")

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

        if self.debug:
            logger.debug(
                f"Sending {len(data)} bytes of query {name}:{status} to Kafka topic "
                f"{self.topic} for {environment}:{uuid}"
            )

        record = KafkaRecord(
            topic=self.topic,
            key=uuid.encode("utf-8"),
            value=data,
            headers=[
                (HEADER_LOG_TYPE, LogType.QUERY.value.encode("utf-8")),
                (HEADER_ENVIRONMENT, environment.encode("utf-8")),
                (HEADER_QUERY_NAME, name.encode("utf-8")),
                (HEADER_STATUS, str(status).encode("utf-8")),
            ],
        )
        self._deliver(ctx, record, uuid, "failed to produce query result to Kafka")

    def _deliver(self, ctx: ExportContext, record: KafkaRecord, uuid: str, failure: str) -> None:
        """
        Dispatch a record and wait for its acknowledgement or the context.

        Raises:
            ExportCancelledError: If the context finishes first.
            TransportError: If the broker rejects the record.
        """
        try:
            future = self._client.produce(ctx, record)
            metadata = ctx.wait(future)
        except (ExportCancelledError, TransportError):
            raise
        except Exception as e:
            logger.error(f"Failed to produce message to Kafka topic {self.topic} for {uuid}: {e}")
            raise TransportError(
                f"{failure}: {e}", exporter=self.name, details={"topic": self.topic}
            ) from e

        if self.debug:
            logger.debug(
                f"Sent message to Kafka topic {self.topic} for {uuid} "
                f"(partition {getattr(metadata, 'partition', '?')}, "
                f"offset {getattr(metadata, 'offset', '?')})"
            )

    def configure(self, settings: SettingsProvider) -> None:
        super().configure(settings)
        logger.info(f"Kafka exporter producing to topic {self.topic}")

    def close(self) -> None:
        """Flush and release the producer. Safe to call more than once."""
        self._client.close()
