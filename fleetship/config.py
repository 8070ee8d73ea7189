"""
Configuration for fleetship exporters.

Dataclasses describing which backend the service logs to and how each
backend connects, plus the settings-provider protocol consulted by
Exporter.configure().
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from fleetship.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class LoggerKind(Enum):
    """Backend selectors understood by the exporter factory."""

    STDOUT = "stdout"
    S3 = "s3"
    KAFKA = "kafka"


SUPPORTED_SASL_MECHANISMS = ("SCRAM-SHA-256", "SCRAM-SHA-512")


@dataclass
class SASLConfiguration:
    """
    SASL credentials for the Kafka client.

    Attributes:
        mechanism: "SCRAM-SHA-256" or "SCRAM-SHA-512". Empty disables SASL.
        username: SASL username.
        password: SASL password.
    """

    mechanism: str = ""
    username: str = ""
    password: str = field(default="", repr=False)

    @property
    def enabled(self) -> bool:
        return bool(self.mechanism)


@dataclass
class KafkaConfiguration:
    """
    Connection settings for the Kafka backends.

    Attributes:
        bootstrap_servers: Comma-separated seed broker list.
        topic: Target topic for every record.
        connection_timeout: Request timeout in seconds; 0 keeps the client default.
        sasl: SASL credentials.
        ssl_ca_location: Path to a PEM CA bundle; enables TLS when set.
        client_id: Client id reported to the brokers.
    """

    bootstrap_servers: str = ""
    topic: str = ""
    connection_timeout: float = 0.0
    sasl: SASLConfiguration = field(default_factory=SASLConfiguration)
    ssl_ca_location: str = ""
    client_id: str = "fleetship"

    def __post_init__(self) -> None:
        if isinstance(self.sasl, dict):
            self.sasl = SASLConfiguration(**self.sasl)

    @property
    def servers(self) -> list[str]:
        """Bootstrap servers as a list."""
        return [s.strip() for s in self.bootstrap_servers.split(",") if s.strip()]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KafkaConfiguration:
        """Create config from dictionary."""
        return cls(
            bootstrap_servers=data.get("bootstrap_servers", ""),
            topic=data.get("topic", ""),
            connection_timeout=float(data.get("connection_timeout", 0.0)),
            sasl=SASLConfiguration(**data.get("sasl", {})),
            ssl_ca_location=data.get("ssl_ca_location", ""),
            client_id=data.get("client_id", "fleetship"),
        )


@dataclass
class S3Configuration:
    """
    Connection settings for the S3 backend.

    Attributes:
        bucket: Target bucket.
        region: AWS region.
        access_key: Static access key id.
        secret_access_key: Static secret key.
        endpoint_url: Custom endpoint (S3-compatible storage).
        connection_timeout: Connect timeout in seconds.
        read_timeout: Read timeout in seconds.
    """

    bucket: str = ""
    region: str = ""
    access_key: str = ""
    secret_access_key: str = field(default="", repr=False)
    endpoint_url: str | None = None
    connection_timeout: float = 10.0
    read_timeout: float = 30.0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> S3Configuration:
        """Create config from dictionary."""
        return cls(
            bucket=data.get("bucket", ""),
            region=data.get("region", ""),
            access_key=data.get("access_key", data.get("accessKey", "")),
            secret_access_key=data.get(
                "secret_access_key", data.get("secretAccessKey", "")
            ),
            endpoint_url=data.get("endpoint_url"),
            connection_timeout=float(data.get("connection_timeout", 10.0)),
            read_timeout=float(data.get("read_timeout", 30.0)),
        )


@dataclass
class ServiceConfig:
    """
    Exporter-related settings of the ingestion service.

    Attributes:
        logger: Backend selector ("stdout", "s3", "kafka").
        logger_file: JSON file holding backend settings when not given inline.
        always_log: Also keep status and query records in an always-store backend.
        s3: Inline S3 settings.
        kafka: Inline Kafka settings.
    """

    logger: str = LoggerKind.STDOUT.value
    logger_file: str | None = None
    always_log: bool = False
    s3: S3Configuration = field(default_factory=S3Configuration)
    kafka: KafkaConfiguration = field(default_factory=KafkaConfiguration)

    def __post_init__(self) -> None:
        if isinstance(self.logger, LoggerKind):
            self.logger = self.logger.value
        self.logger = self.logger.lower()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ServiceConfig:
        """Create config from dictionary."""
        return cls(
            logger=data.get("logger", LoggerKind.STDOUT.value),
            logger_file=data.get("logger_file"),
            always_log=bool(data.get("always_log", False)),
            s3=S3Configuration.from_dict(data.get("s3", {})),
            kafka=KafkaConfiguration.from_dict(data.get("kafka", {})),
        )


def load_s3_config(path: str | Path) -> S3Configuration:
    """
    Load S3 settings from the "s3" section of a JSON file.

    Args:
        path: Path to the JSON settings file.

    Returns:
        The parsed S3Configuration.

    Raises:
        ConfigurationError: If the file cannot be read or lacks the section.
    """
    path = Path(path)
    logger.info(f"Loading S3 config from {path}")
    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Failed to read config file {path}: {e}", backend=LoggerKind.S3.value
        ) from e

    section = raw.get(LoggerKind.S3.value) if isinstance(raw, dict) else None
    if not isinstance(section, dict):
        raise ConfigurationError(
            f"JSON key {LoggerKind.S3.value} not found in {path}",
            backend=LoggerKind.S3.value,
        )
    return S3Configuration.from_dict(section)


@runtime_checkable
class SettingsProvider(Protocol):
    """
    Live settings consulted when an exporter is configured.

    Implemented by the service's settings manager; StaticSettings is the
    in-memory version.
    """

    def exporter_enabled(self, name: str) -> bool | None:
        """Enabled flag for the named exporter, None to leave it unchanged."""
        ...

    def debug_enabled(self, name: str) -> bool:
        """Whether debug logging is on for the named exporter."""
        ...


@dataclass
class StaticSettings:
    """
    In-memory settings provider.

    Example:
        >>> settings = StaticSettings(debug={"kafka": True}, disabled={"s3"})
        >>> settings.exporter_enabled("s3")
        False
    """

    debug: dict[str, bool] = field(default_factory=dict)
    disabled: set[str] = field(default_factory=set)
    debug_all: bool = False

    def exporter_enabled(self, name: str) -> bool | None:
        if name in self.disabled:
            return False
        return None

    def debug_enabled(self, name: str) -> bool:
        return self.debug_all or self.debug.get(name, False)
