"""
Multi-destination exporter.

Sends every call to all enabled member exporters in parallel and
reports the ones that failed. Members are never short-circuited: a
failing backend does not stop its siblings from receiving the record.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from collections.abc import Callable, Iterable

from fleetship.config import SettingsProvider
from fleetship.context import ExportContext
from fleetship.exceptions import AggregateExportError, ConfigurationError, ExporterFailure
from fleetship.exporters.base import BaseExporter, Exporter
from fleetship.types import LogType, log_type_string

logger = logging.getLogger(__name__)


class MultiExporter(BaseExporter):
    """
    Export to several backends at once.

    The member list is guarded by a lock and every call works on a
    snapshot of it, so members can be added or removed while calls are
    in flight.

    Example:
        >>> multi = MultiExporter(ConsoleExporter(), S3Exporter(s3_config))
        >>> multi.add_exporter(KafkaExporter(kafka_config))
        >>> try:
        ...     multi.export(ctx, "status", data, "prod", uuid)
        ... except AggregateExportError as e:
        ...     logger.warning(f"Some sinks failed: {e.names}")
    """

    def __init__(self, *exporters: Exporter, max_workers: int | None = None) -> None:
        """
        Initialize the multi-exporter.

        Args:
            *exporters: Member exporters, in order.
            max_workers: Thread pool size per call (default: one per member).
        """
        super().__init__("multi")
        self._exporters: list[Exporter] = list(exporters)
        self._lock = threading.Lock()
        self.max_workers = max_workers

    @property
    def exporters(self) -> list[Exporter]:
        """Snapshot of the member list."""
        with self._lock:
            return list(self._exporters)

    @property
    def exporter_count(self) -> int:
        with self._lock:
            return len(self._exporters)

    def add_exporter(self, exporter: Exporter) -> None:
        """
        Append an exporter.

        Args:
            exporter: Exporter to add.
        """
        with self._lock:
            self._exporters.append(exporter)

    def remove_exporter(self, name: str) -> Exporter | None:
        """
        Remove the first exporter with the given name.

        Args:
            name: Name of the exporter to remove.

        Returns:
            The removed exporter, or None if no member has that name.
        """
        with self._lock:
            for i, exporter in enumerate(self._exporters):
                if exporter.name == name:
                    return self._exporters.pop(i)
        return None

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
        self._fan_out(
            "export",
            lambda exp: exp.export(ctx, kind, data, environment, uuid),
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

        self._fan_out(
            "export_query",
            lambda exp: exp.export_query(ctx, data, environment, uuid, name, status),
        )

    def _fan_out(self, operation: str, call: Callable[[Exporter], None]) -> None:
        """
        Run call against every enabled member in parallel.

        Raises:
            AggregateExportError: If any member raised.
        """
        targets = [exp for exp in self.exporters if exp.is_enabled()]
        if not targets:
            return

        workers = self.max_workers or len(targets)
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="fleetship-multi"
        ) as executor:
            futures = [executor.submit(call, exp) for exp in targets]
            concurrent.futures.wait(futures)

        failures = _collect_failures(zip(targets, futures))
        for failure in failures:
            logger.error(f"Failed to {operation.replace('_', ' ')} via {failure.name}: {failure.error}")
        if failures:
            raise AggregateExportError(operation, failures)

    def configure(self, settings: SettingsProvider) -> None:
        """
        Configure this exporter and every member.

        Raises:
            ConfigurationError: Listing every member that failed to configure.
        """
        super().configure(settings)

        errors: list[str] = []
        for exporter in self.exporters:
            try:
                exporter.configure(settings)
            except Exception as e:
                errors.append(f"exporter {exporter.name}: {e}")

        if errors:
            raise ConfigurationError(
                f"configuration errors: [{'; '.join(errors)}]", backend=self.name
            )

    def close(self) -> None:
        """
        Close every member.

        Raises:
            AggregateExportError: If any member failed to close.
        """
        failures: list[ExporterFailure] = []
        for exporter in self.exporters:
            try:
                exporter.close()
            except Exception as e:
                failures.append(ExporterFailure(exporter.name, e))
        if failures:
            raise AggregateExportError("close", failures)


def _collect_failures(
    outcomes: Iterable[tuple[Exporter, concurrent.futures.Future[None]]],
) -> list[ExporterFailure]:
    """Turn finished futures into failures, in member order."""
    failures = []
    for exporter, future in outcomes:
        error = future.exception()
        if error is not None:
            failures.append(ExporterFailure(exporter.name, error))
    return failures
