"""
Kafka client plumbing shared by the broker exporter and the batching logger.

The producer is aiokafka's AIOKafkaProducer. It lives on one dedicated
event-loop thread owned by KafkaClient; export threads hand it records
with run_coroutine_threadsafe and block on the returned future, so the
rest of the package stays synchronous and thread-based.
"""

from __future__ import annotations

import asyncio
import logging
import ssl
import threading
from collections.abc import Callable, Coroutine, Iterator, Sequence
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from aiokafka import AIOKafkaProducer
from aiokafka.helpers import create_ssl_context

from fleetship.config import SUPPORTED_SASL_MECHANISMS, KafkaConfiguration, LoggerKind
from fleetship.context import ExportContext
from fleetship.exceptions import ConfigurationError, ExportCancelledError, TransportError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bound on how long close() waits for the final flush.
CLOSE_TIMEOUT = 30.0


@dataclass
class KafkaRecord:
    """
    One message bound for a topic.

    Attributes:
        topic: Target topic.
        key: Partition key (the agent uuid).
        value: JSON payload.
        headers: Side-channel metadata as (name, value) pairs.
    """

    topic: str
    key: bytes
    value: bytes
    headers: list[tuple[str, bytes]] = field(default_factory=list)

    def header(self, name: str) -> bytes | None:
        """Value of the named header, if present."""
        for key, value in self.headers:
            if key == name:
                return value
        return None


@dataclass
class ProduceResult:
    """Outcome of producing one record."""

    record: KafkaRecord
    metadata: Any = None
    error: BaseException | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ProduceResults:
    """Outcomes of a batch, in submission order."""

    results: list[ProduceResult] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[ProduceResult]:
        return iter(self.results)

    def first_error(self) -> BaseException | None:
        """The first error in the batch, None if every record was delivered."""
        for result in self.results:
            if result.error is not None:
                return result.error
        return None


def build_producer_options(config: KafkaConfiguration) -> dict[str, Any]:
    """
    Translate a KafkaConfiguration into AIOKafkaProducer keyword arguments.

    Args:
        config: Kafka connection settings.

    Returns:
        Keyword arguments for AIOKafkaProducer.

    Raises:
        ConfigurationError: If SASL is requested without a username or
            password, names an unsupported mechanism, or the CA file
            cannot be read or used.
    """
    backend = LoggerKind.KAFKA.value
    options: dict[str, Any] = {
        "bootstrap_servers": config.servers,
        "client_id": config.client_id,
    }

    if config.connection_timeout > 0:
        options["request_timeout_ms"] = int(config.connection_timeout * 1000)

    sasl = config.sasl
    if sasl.enabled:
        if not sasl.username:
            raise ConfigurationError("SASL mechanism requires a username", backend=backend)
        if not sasl.password:
            raise ConfigurationError("SASL mechanism requires a password", backend=backend)
        if sasl.mechanism not in SUPPORTED_SASL_MECHANISMS:
            raise ConfigurationError(
                f"Unknown SASL mechanism '{sasl.mechanism}'",
                backend=backend,
                details={"supported": list(SUPPORTED_SASL_MECHANISMS)},
            )
        options["sasl_mechanism"] = sasl.mechanism
        options["sasl_plain_username"] = sasl.username
        options["sasl_plain_password"] = sasl.password

    if config.ssl_ca_location:
        options["ssl_context"] = _load_ca_context(config.ssl_ca_location)

    if sasl.enabled:
        options["security_protocol"] = "SASL_SSL" if config.ssl_ca_location else "SASL_PLAINTEXT"
    elif config.ssl_ca_location:
        options["security_protocol"] = "SSL"

    return options


def _load_ca_context(path: str) -> ssl.SSLContext:
    """Build a client TLS context trusting the CA bundle at path."""
    backend = LoggerKind.KAFKA.value
    try:
        ca_cert = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(
            f"Failed to read CA Cert from '{path}': {e}", backend=backend
        ) from e

    try:
        return create_ssl_context(cadata=ca_cert)
    except (ssl.SSLError, ValueError) as e:
        raise ConfigurationError(
            f"Failed to use CA Cert for client side: {e}", backend=backend
        ) from e


class _EventLoopThread:
    """
    An asyncio loop running forever on a daemon thread.

    submit() after stop() raises RuntimeError. Work still pending when
    the loop stops is cancelled, so no caller is left waiting on it.
    """

    def __init__(self, name: str) -> None:
        self._loop = asyncio.new_event_loop()
        self._stopped = False
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        with self._lock:
            if self._stopped:
                coro.close()
                raise RuntimeError("Event loop is stopped")
            return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def stop(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join()

        pending = asyncio.all_tasks(self._loop)
        for task in pending:
            task.cancel()
        if pending:
            self._loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        self._loop.close()


class KafkaClient:
    """
    One long-lived producer bound to a broker list.

    The producer is created and started lazily on the first send, on
    the client's own event-loop thread. close() flushes and stops it
    exactly once.

    Example:
        >>> client = KafkaClient(KafkaConfiguration(
        ...     bootstrap_servers="broker-1:9092,broker-2:9092",
        ...     topic="osquery-logs",
        ... ))
        >>> future = client.produce(ExportContext(), KafkaRecord(
        ...     topic="osquery-logs", key=b"abc-123", value=b'{"pid": "1"}',
        ... ))
        >>> client.close()
    """

    def __init__(
        self,
        config: KafkaConfiguration,
        producer_factory: Callable[..., Any] = AIOKafkaProducer,
    ) -> None:
        """
        Initialize the client and validate its options.

        Args:
            config: Kafka connection settings.
            producer_factory: Producer class; replaced in tests.

        Raises:
            ConfigurationError: If the configuration is unusable.
        """
        self.config = config
        self._options = build_producer_options(config)
        self._producer_factory = producer_factory
        self._producer: Any = None
        self._runner: _EventLoopThread | None = None
        self._starting: Future[Any] | None = None
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    def _closed_error(self) -> TransportError:
        return TransportError("Kafka client is closed", exporter=LoggerKind.KAFKA.value)

    def _ensure_started(self, ctx: ExportContext) -> tuple[Any, _EventLoopThread]:
        """
        Start the producer on first use and return it with its loop.

        Concurrent first calls share one start. Each caller waits on it
        under its own context; the lock is never held while waiting.
        """
        with self._lock:
            if self._closed:
                raise self._closed_error()
            if self._producer is not None and self._runner is not None:
                return self._producer, self._runner
            if self._runner is None:
                self._runner = _EventLoopThread(name=f"kafka-{self.config.client_id}")
            runner = self._runner
            if self._starting is None:
                self._starting = runner.submit(self._start_producer())
            starting = self._starting

        try:
            producer = ctx.wait(starting, cancel_future=False)
        except ExportCancelledError:
            if not starting.cancelled():
                raise
            with self._lock:
                closed = self._closed
            if closed:
                raise self._closed_error() from None
            raise
        except Exception as e:
            with self._lock:
                # A failed start is not cached; the next call retries.
                if self._starting is starting:
                    self._starting = None
            raise TransportError(
                f"Failed to create kafka client: {e}",
                exporter=LoggerKind.KAFKA.value,
                details={"bootstrap_servers": self.config.bootstrap_servers},
            ) from e

        with self._lock:
            if self._closed:
                raise self._closed_error()
            if self._producer is None:
                self._producer = producer
                logger.info(f"Kafka producer connected to {self.config.bootstrap_servers}")
            return self._producer, runner

    def _submit(self, runner: _EventLoopThread, coro: Coroutine[Any, Any, T]) -> Future[T]:
        try:
            return runner.submit(coro)
        except RuntimeError as e:
            raise TransportError(
                f"Kafka client is closed: {e}", exporter=LoggerKind.KAFKA.value
            ) from e

    async def _start_producer(self) -> Any:
        producer = self._producer_factory(**self._options)
        try:
            await producer.start()
        except BaseException:
            await producer.stop()
            raise
        return producer

    @staticmethod
    async def _enqueue(producer: Any, record: KafkaRecord) -> Any:
        return await producer.send(
            record.topic,
            value=record.value,
            key=record.key,
            headers=list(record.headers) or None,
        )

    async def _send(self, producer: Any, record: KafkaRecord) -> Any:
        delivery = await self._enqueue(producer, record)
        return await delivery

    async def _send_all(self, producer: Any, records: Sequence[KafkaRecord]) -> ProduceResults:
        # All records are queued before any delivery is awaited.
        pending: list[Any] = []
        for record in records:
            try:
                pending.append(await self._enqueue(producer, record))
            except Exception as e:
                pending.append(e)

        results = ProduceResults()
        for record, delivery in zip(records, pending):
            if isinstance(delivery, Exception):
                results.results.append(ProduceResult(record, error=delivery))
                continue
            try:
                results.results.append(ProduceResult(record, metadata=await delivery))
            except Exception as e:
                results.results.append(ProduceResult(record, error=e))
        return results

    def produce(self, ctx: ExportContext, record: KafkaRecord) -> Future[Any]:
        """
        Dispatch one record without waiting for its acknowledgement.

        Args:
            ctx: Call context, honored while the producer starts.
            record: The record to send.

        Returns:
            A future resolving to the broker's record metadata.
        """
        producer, runner = self._ensure_started(ctx)
        return self._submit(runner, self._send(producer, record))

    def produce_sync(self, ctx: ExportContext, records: Sequence[KafkaRecord]) -> ProduceResults:
        """
        Send a batch of records and wait for every acknowledgement.

        Args:
            ctx: Call context.
            records: Records to send together.

        Returns:
            Per-record outcomes in submission order.

        Raises:
            ExportCancelledError: If the context finishes first.
        """
        producer, runner = self._ensure_started(ctx)
        return ctx.wait(self._submit(runner, self._send_all(producer, records)))

    def close(self) -> None:
        """Flush and stop the producer. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            producer, runner, starting = self._producer, self._runner, self._starting
            self._producer = None
            self._runner = None
            self._starting = None

        if runner is None:
            return

        error: BaseException | None = None
        if producer is None and starting is not None:
            # A start still in flight is allowed to finish so it can be stopped.
            try:
                producer = starting.result(timeout=CLOSE_TIMEOUT)
            except (Exception, CancelledError) as e:
                logger.debug(f"Kafka producer start abandoned at close: {e}")
        if producer is not None:
            try:
                runner.submit(producer.stop()).result(timeout=CLOSE_TIMEOUT)
            except Exception as e:
                error = e
        runner.stop()

        if error is not None:
            raise TransportError(
                f"Failed to close kafka producer: {error}", exporter=LoggerKind.KAFKA.value
            ) from error
        logger.info("Kafka producer closed")

    def __enter__(self) -> KafkaClient:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
