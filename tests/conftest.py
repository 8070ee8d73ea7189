"""
Pytest fixtures for fleetship tests.

Provides in-memory stand-ins for the Kafka producer and client and a
recording exporter used across the test modules.
"""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future
from typing import Any

import pytest

from fleetship.broker import KafkaRecord, ProduceResult, ProduceResults
from fleetship.config import KafkaConfiguration, S3Configuration
from fleetship.context import ExportContext
from fleetship.exporters.base import BaseExporter
from fleetship.types import LogType, log_type_string


# ============================================================================
# Exporter Fixtures
# ============================================================================


class RecordingExporter(BaseExporter):
    """Exporter that remembers every call and can be told to fail."""

    def __init__(
        self,
        name: str,
        error: Exception | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        super().__init__(name)
        self.error = error
        self.gate = gate
        self.calls: list[tuple[Any, ...]] = []
        self.configured = 0
        self.closed = 0
        self._calls_lock = threading.Lock()

    def _record(self, call: tuple[Any, ...]) -> None:
        if self.gate is not None:
            self.gate.wait(timeout=5)
        with self._calls_lock:
            self.calls.append(call)
        if self.error is not None:
            raise self.error

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
        self._record(("export", log_type_string(log_type), data, environment, uuid))

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
        self._record(("export_query", data, environment, uuid, name, status))

    def configure(self, settings: Any) -> None:
        super().configure(settings)
        self.configured += 1

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def recording_exporter() -> RecordingExporter:
    """A recording exporter that always succeeds."""
    return RecordingExporter("recorder")


# ============================================================================
# Kafka Fixtures
# ============================================================================


class FakeRecordMetadata:
    """Broker acknowledgement returned by the fake producer."""

    def __init__(self, topic: str, partition: int, offset: int) -> None:
        self.topic = topic
        self.partition = partition
        self.offset = offset


class FakeProducer:
    """
    In-memory stand-in for AIOKafkaProducer.

    send() returns an asyncio future, as the real producer does. Set
    ``hang`` to leave deliveries pending, ``fail_on`` to reject records
    whose value matches, or ``start_delay`` to slow down start().
    """

    instances: list[FakeProducer] = []

    def __init__(self, **options: Any) -> None:
        self.options = options
        self.started = False
        self.stopped = 0
        self.sent: list[dict[str, Any]] = []
        self.hang = False
        self.fail_on: set[bytes] = set()
        self.start_error: Exception | None = None
        self.start_delay = 0.0
        FakeProducer.instances.append(self)

    async def start(self) -> None:
        if self.start_delay:
            await asyncio.sleep(self.start_delay)
        if self.start_error is not None:
            raise self.start_error
        self.started = True

    async def stop(self) -> None:
        self.stopped += 1

    async def send(
        self,
        topic: str,
        value: bytes | None = None,
        key: bytes | None = None,
        headers: list[tuple[str, bytes]] | None = None,
    ) -> asyncio.Future[Any]:
        self.sent.append({"topic": topic, "value": value, "key": key, "headers": headers})
        delivery = asyncio.get_running_loop().create_future()
        if self.hang:
            return delivery
        if value in self.fail_on:
            delivery.set_exception(RuntimeError(f"broker rejected {value!r}"))
        else:
            delivery.set_result(FakeRecordMetadata(topic, 0, len(self.sent) - 1))
        return delivery


@pytest.fixture
def fake_producer_class():
    """The FakeProducer class, with its instance registry reset."""
    FakeProducer.instances = []
    yield FakeProducer
    FakeProducer.instances = []


class FakeKafkaClient:
    """
    In-memory stand-in for KafkaClient.

    Records every record it is handed. ``errors`` maps record values to
    the exception their delivery should fail with.
    """

    def __init__(self) -> None:
        self.records: list[KafkaRecord] = []
        self.batches: list[list[KafkaRecord]] = []
        self.errors: dict[bytes, Exception] = {}
        self.pending = False
        self.closed = 0

    def produce(self, ctx: ExportContext, record: KafkaRecord) -> Future[Any]:
        self.records.append(record)
        future: Future[Any] = Future()
        if self.pending:
            return future
        if record.value in self.errors:
            future.set_exception(self.errors[record.value])
        else:
            future.set_result(FakeRecordMetadata(record.topic, 0, len(self.records) - 1))
        return future

    def produce_sync(self, ctx: ExportContext, records: list[KafkaRecord]) -> ProduceResults:
        self.batches.append(list(records))
        self.records.extend(records)
        results = ProduceResults()
        for record in records:
            error = self.errors.get(record.value)
            results.results.append(ProduceResult(record, error=error))
        return results

    def close(self) -> None:
        self.closed += 1


@pytest.fixture
def fake_kafka_client() -> FakeKafkaClient:
    """A recording Kafka client."""
    return FakeKafkaClient()


@pytest.fixture
def kafka_config() -> KafkaConfiguration:
    """Plaintext Kafka configuration."""
    return KafkaConfiguration(
        bootstrap_servers="broker-1:9092,broker-2:9092",
        topic="osquery-logs",
    )


@pytest.fixture
def s3_config() -> S3Configuration:
    """S3 configuration with static credentials."""
    return S3Configuration(
        bucket="fleet-logs",
        region="us-west-2",
        access_key="AKIAEXAMPLE",
        secret_access_key="secret",
    )
