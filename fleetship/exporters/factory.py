"""
Service-level exporter and backend factory.

The ingestion service talks to a single ServiceExporter. It wraps the
primary backend chosen by configuration and, optionally, an always-store
backend that keeps a copy of every status and query record whatever
happens to the primary.

Quick Start:
    >>> from fleetship.exporters import create_service_exporter
    >>>
    >>> service = create_service_exporter(
    ...     ServiceConfig(logger="kafka", kafka=kafka_config, always_log=True),
    ...     StaticSettings(),
    ... )
    >>> service.export(ExportContext(timeout=5), "status", data, "prod", uuid)
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from fleetship.config import LoggerKind, ServiceConfig, SettingsProvider
from fleetship.context import ExportContext
from fleetship.exceptions import (
    AggregateExportError,
    ConfigurationError,
    ExporterFailure,
)
from fleetship.exporters.base import Exporter
from fleetship.exporters.console import ConsoleExporter
from fleetship.exporters.kafka import KafkaExporter
from fleetship.exporters.s3 import S3Exporter
from fleetship.types import LogType, Report, log_type_string

logger = logging.getLogger(__name__)

ExporterBuilder = Callable[[ServiceConfig], Exporter]


class ServiceExporter:
    """
    The exporter the ingestion front door calls.

    Both the primary and the always-store paths are always attempted;
    failures from either are aggregated into one AggregateExportError.
    An always-store failure is reported like any other.

    Attributes:
        primary: The configured primary backend.
        always_store: Optional backend receiving every status and query record.
    """

    def __init__(self, primary: Exporter, always_store: Exporter | None = None) -> None:
        self.primary = primary
        self.always_store = always_store

    def export(
        self,
        ctx: ExportContext,
        log_type: LogType | str,
        data: bytes,
        environment: str,
        uuid: str,
    ) -> None:
        """
        Send a status or result payload.

        Status payloads also go to the always-store backend.

        Raises:
            AggregateExportError: If any backend failed.
        """
        kind = log_type_string(log_type)
        targets = [self.primary]
        if kind == LogType.STATUS.value and self.always_store is not None:
            targets.append(self.always_store)

        self._dispatch(
            "export",
            targets,
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
        """
        Send an on-demand query result to primary and always-store.

        Raises:
            AggregateExportError: If any backend failed.
        """
        targets = [self.primary]
        if self.always_store is not None:
            targets.append(self.always_store)

        self._dispatch(
            "export_query",
            targets,
            lambda exp: exp.export_query(ctx, data, environment, uuid, name, status),
        )

    def export_report(self, ctx: ExportContext, report: Report) -> None:
        """Send a Report through export or export_query depending on its type."""
        if report.is_query:
            self.export_query(
                ctx,
                report.data,
                report.environment,
                report.uuid,
                report.query_name or "",
                report.status if report.status is not None else 0,
            )
        else:
            self.export(ctx, report.log_type, report.data, report.environment, report.uuid)

    @staticmethod
    def _dispatch(
        operation: str,
        targets: list[Exporter],
        call: Callable[[Exporter], None],
    ) -> None:
        failures: list[ExporterFailure] = []
        for exporter in targets:
            if not exporter.is_enabled():
                continue
            try:
                call(exporter)
            except Exception as e:
                failures.append(ExporterFailure(exporter.name, e))

        if failures:
            raise AggregateExportError(operation, failures)

    def close(self) -> None:
        """Close primary and always-store backends."""
        failures: list[ExporterFailure] = []
        for exporter in (self.primary, self.always_store):
            if exporter is None:
                continue
            try:
                exporter.close()
            except Exception as e:
                failures.append(ExporterFailure(exporter.name, e))
        if failures:
            raise AggregateExportError("close", failures)

    def __enter__(self) -> ServiceExporter:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


def _build_console(config: ServiceConfig) -> Exporter:
    return ConsoleExporter()


def _build_s3(config: ServiceConfig) -> Exporter:
    if config.s3.bucket:
        return S3Exporter(config.s3)
    if not config.logger_file:
        raise ConfigurationError(
            "S3 logger needs a bucket or a logger file", backend=LoggerKind.S3.value
        )
    return S3Exporter.from_file(config.logger_file)


def _build_kafka(config: ServiceConfig) -> Exporter:
    return KafkaExporter(config.kafka)


class ExporterFactory:
    """
    Factory for creating the primary exporter from configuration.

    Unknown or unimplemented selectors fall back to the console
    exporter with a warning instead of failing.

    Example:
        >>> exporter = ExporterFactory.create(ServiceConfig(logger="s3", s3=s3_config))
        >>>
        >>> # Plug in a custom backend
        >>> ExporterFactory.register("splunk", lambda cfg: SplunkExporter(cfg))
    """

    _builders: dict[str, ExporterBuilder] = {
        LoggerKind.STDOUT.value: _build_console,
        LoggerKind.S3.value: _build_s3,
        LoggerKind.KAFKA.value: _build_kafka,
    }

    @classmethod
    def create(cls, config: ServiceConfig) -> Exporter:
        """
        Build the exporter selected by config.logger.

        Args:
            config: Service configuration.

        Returns:
            An unconfigured exporter.

        Raises:
            ConfigurationError: If the selected backend cannot be built.
        """
        selector = config.logger.lower()
        builder = cls._builders.get(selector)
        if builder is None:
            logger.warning(f"Logger '{config.logger}' is not supported, defaulting to stdout")
            builder = _build_console

        try:
            return builder(config)
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(
                f"Failed to create {selector} exporter: {e}", backend=selector
            ) from e

    @classmethod
    def register(cls, selector: str, builder: ExporterBuilder) -> None:
        """
        Register a builder for a new backend selector.

        Args:
            selector: Value of ServiceConfig.logger that picks this backend.
            builder: Callable building the exporter from the config.
        """
        cls._builders[selector.lower()] = builder
        logger.debug(f"Registered exporter type: {selector}")

    @classmethod
    def unregister(cls, selector: str) -> bool:
        """
        Remove a registered selector. The built-in stdout builder stays.

        Returns:
            True if the selector was removed.
        """
        selector = selector.lower()
        if selector in cls._builders and selector != LoggerKind.STDOUT.value:
            del cls._builders[selector]
            return True
        return False

    @classmethod
    def available(cls) -> list[str]:
        """Selectors the factory knows about."""
        return sorted(cls._builders)


def create_service_exporter(
    config: ServiceConfig,
    settings: SettingsProvider,
    always_store: Exporter | None = None,
) -> ServiceExporter:
    """
    Build and configure the service exporter.

    Args:
        config: Service configuration.
        settings: Live settings handed to every exporter's configure().
        always_store: Backend for the always-store path. When None and
            config.always_log is set, a console exporter is used.

    Returns:
        A ready ServiceExporter.

    Raises:
        ConfigurationError: If an exporter cannot be built or configured.
    """
    primary = ExporterFactory.create(config)
    _configure(primary, settings, "primary")

    if always_store is None and config.always_log:
        always_store = ConsoleExporter()
    if always_store is not None:
        _configure(always_store, settings, "always-store")

    logger.info(
        f"Exporting via {primary.name}"
        + (f" with always-store {always_store.name}" if always_store is not None else "")
    )
    return ServiceExporter(primary, always_store)


def _configure(exporter: Exporter, settings: SettingsProvider, role: str) -> None:
    try:
        exporter.configure(settings)
    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to configure {role} exporter: {e}", backend=exporter.name
        ) from e
