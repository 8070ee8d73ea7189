"""
AWS S3 exporter for fleetship.

Uploads each record as one object:

- export:       {environment}/{log_type}/{uuid}:{unix_millis}.json
- export_query: {environment}/query/{name}:{uuid}:{status}:{unix_millis}.json

Two uploads for the same key prefix inside the same millisecond
overwrite each other; callers are expected to keep that rare.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from fleetship.config import LoggerKind, S3Configuration, SettingsProvider, load_s3_config
from fleetship.context import ExportContext
from fleetship.exceptions import ConfigurationError, TransportError
from fleetship.exporters.base import BaseExporter
from fleetship.types import LogType, log_type_string

logger = logging.getLogger(__name__)

# Content sniffing looks at no more than this many leading bytes.
SNIFF_LEN = 512

_BINARY_SIGNATURES: list[tuple[bytes, str]] = [
    (b"%PDF-", "application/pdf"),
    (b"%!PS-Adobe-", "application/postscript"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"PK\x03\x04", "application/zip"),
    (b"Rar!\x1a\x07", "application/x-rar-compressed"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"BM", "image/bmp"),
    (b"\x00asm", "application/wasm"),
    (b"OggS\x00", "application/ogg"),
]

_MARKUP_PREFIXES = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1",
    b"<DIV", b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B",
    b"<BODY", b"<BR", b"<P", b"<!--",
)

_WHITESPACE = b"\t\n\x0c\r "


def detect_content_type(data: bytes) -> str:
    """
    Guess a MIME type from the payload's leading bytes.

    Follows the HTTP content-sniffing algorithm for the cases that matter
    here: known binary signatures, HTML and XML markup, byte-order marks
    and plain UTF-8 text. Anything else is application/octet-stream.
    JSON reports sniff as UTF-8 text.

    Args:
        data: The payload.

    Returns:
        A MIME type string.

    Example:
        >>> detect_content_type(b'[{"pid": "1"}]')
        'text/plain; charset=utf-8'
    """
    head = data[:SNIFF_LEN]

    if head.startswith(b"\xfe\xff") or head.startswith(b"\xff\xfe"):
        return "text/plain; charset=utf-16"
    if head.startswith(b"\xef\xbb\xbf"):
        return "text/plain; charset=utf-8"

    for signature, mime in _BINARY_SIGNATURES:
        if head.startswith(signature):
            return mime

    stripped = head.lstrip(_WHITESPACE)
    upper = stripped.upper()
    for prefix in _MARKUP_PREFIXES:
        if upper.startswith(prefix):
            # Tag must be followed by a space or '>' to count.
            rest = stripped[len(prefix):len(prefix) + 1]
            if prefix == b"<!--" or rest in (b" ", b">"):
                return "text/html; charset=utf-8"
    if stripped.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"

    if any(b <= 0x08 or b == 0x0B or 0x0E <= b <= 0x1A or 0x1C <= b <= 0x1F for b in head):
        return "application/octet-stream"
    return "text/plain; charset=utf-8"


def _unix_millis() -> int:
    return time.time_ns() // 1_000_000


class S3Exporter(BaseExporter):
    """
    Export records to Amazon S3 or S3-compatible storage.

    One blocking put_object per call. botocore's own retries are turned
    off; failures are wrapped in TransportError and returned to the
    caller, which owns any retry policy.

    Example:
        >>> config = S3Configuration(
        ...     bucket="fleet-logs",
        ...     region="us-west-2",
        ...     access_key="AKIA...",
        ...     secret_access_key="...",
        ... )
        >>> exporter = S3Exporter(config)
        >>> exporter.export(ExportContext(timeout=10), "status", data, "prod", uuid)
    """

    def __init__(self, config: S3Configuration, client: Any = None) -> None:
        """
        Initialize the S3 exporter.

        Args:
            config: Bucket and credential settings.
            client: Pre-built boto3 S3 client; built from config when None.
        """
        super().__init__(LoggerKind.S3.value)
        self.config = config
        self._client = client if client is not None else self._build_client(config)

    @classmethod
    def from_file(cls, path: str | Path) -> S3Exporter:
        """
        Create an exporter from the "s3" section of a JSON settings file.

        Raises:
            ConfigurationError: If the file cannot be read.
        """
        return cls(load_s3_config(path))

    @staticmethod
    def _build_client(config: S3Configuration) -> Any:
        """
        Build the boto3 S3 client.

        Raises:
            ConfigurationError: If boto3 rejects the region, endpoint or credentials.
        """
        client_config = BotoConfig(
            connect_timeout=config.connection_timeout,
            read_timeout=config.read_timeout,
            retries={"max_attempts": 0},
        )

        client_kwargs: dict[str, Any] = {"config": client_config}
        if config.region:
            client_kwargs["region_name"] = config.region
        if config.endpoint_url:
            client_kwargs["endpoint_url"] = config.endpoint_url
        if config.access_key:
            client_kwargs["aws_access_key_id"] = config.access_key
            client_kwargs["aws_secret_access_key"] = config.secret_access_key

        try:
            return boto3.client("s3", **client_kwargs)
        except (BotoCoreError, ValueError) as e:
            raise ConfigurationError(
                f"Failed to create S3 client: {e}", backend=LoggerKind.S3.value
            ) from e

    def export_key(self, log_type: LogType | str, environment: str, uuid: str) -> str:
        """Object key for a status/result record."""
        return f"{environment}/{log_type_string(log_type)}/{uuid}:{_unix_millis()}.json"

    def query_key(self, environment: str, uuid: str, name: str, status: int) -> str:
        """Object key for a query result."""
        return f"{environment}/query/{name}:{uuid}:{status}:{_unix_millis()}.json"

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
                f"Sending {len(data)} bytes of {kind} data to S3 for {environment}:{uuid}"
            )

        key = self.export_key(kind, environment, uuid)
        self._upload(ctx, key, data, "failed to upload data to S3")

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
                f"Sending {len(data)} bytes of query {name}:{status} to S3 "
                f"for {environment}:{uuid}"
            )

        key = self.query_key(environment, uuid, name, status)
        self._upload(ctx, key, data, "failed to upload query result to S3")

    def _upload(self, ctx: ExportContext, key: str, data: bytes, failure: str) -> None:
        """
        Put one object.

        Raises:
            ExportCancelledError: If the context is already done.
            TransportError: If the upload fails.
        """
        ctx.check()

        try:
            self._client.put_object(
                Bucket=self.config.bucket,
                Key=key,
                Body=data,
                ContentLength=len(data),
                ContentType=detect_content_type(data),
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"S3 upload of {key} to bucket {self.config.bucket} failed: {e}")
            raise TransportError(
                f"{failure}: {e}",
                exporter=self.name,
                details={"bucket": self.config.bucket, "key": key},
            ) from e

        if self.debug:
            logger.debug(f"Uploaded s3://{self.config.bucket}/{key}")

    def configure(self, settings: SettingsProvider) -> None:
        super().configure(settings)
        logger.info(f"S3 exporter writing to bucket {self.config.bucket}")
