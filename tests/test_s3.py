"""
Tests for the S3 exporter.

Tests cover:
- Object key layout for status, result and query records
- put_object arguments (length, content type)
- Error wrapping and disabled behavior
- Content type sniffing
- Client construction and file-based configuration
"""

from __future__ import annotations

import json
import time
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, InvalidRegionError

from fleetship.config import S3Configuration, StaticSettings
from fleetship.context import ExportContext
from fleetship.exceptions import ConfigurationError, ExportCancelledError, TransportError
from fleetship.exporters.s3 import S3Exporter, detect_content_type


@pytest.fixture
def s3_client():
    client = MagicMock()
    client.put_object.return_value = {"ETag": '"abc"'}
    return client


@pytest.fixture
def exporter(s3_config, s3_client):
    return S3Exporter(s3_config, client=s3_client)


class TestS3ExporterKeys:
    """Tests for object key generation."""

    def test_export_key(self, exporter):
        with patch("fleetship.exporters.s3._unix_millis", return_value=1700000000123):
            key = exporter.export_key("status", "prod", "abc-123")
        assert key == "prod/status/abc-123:1700000000123.json"

    def test_query_key(self, exporter):
        with patch("fleetship.exporters.s3._unix_millis", return_value=1700000000123):
            key = exporter.query_key("prod", "abc-123", "uptime", 0)
        assert key == "prod/query/uptime:abc-123:0:1700000000123.json"

    def test_keys_differ_across_milliseconds(self, exporter):
        first = exporter.export_key("result", "prod", "abc-123")
        time.sleep(0.005)
        second = exporter.export_key("result", "prod", "abc-123")
        assert first != second


class TestS3ExporterExport:
    """Tests for S3Exporter.export() and export_query()."""

    def test_export_uploads_object(self, exporter, s3_client):
        data = b'[{"pid": "1"}]'
        with patch("fleetship.exporters.s3._unix_millis", return_value=42):
            exporter.export(ExportContext(), "result", data, "prod", "abc-123")

        s3_client.put_object.assert_called_once_with(
            Bucket="fleet-logs",
            Key="prod/result/abc-123:42.json",
            Body=data,
            ContentLength=len(data),
            ContentType="text/plain; charset=utf-8",
        )

    def test_export_query_uploads_object(self, exporter, s3_client):
        data = b'{"rows": []}'
        with patch("fleetship.exporters.s3._unix_millis", return_value=42):
            exporter.export_query(ExportContext(), data, "prod", "abc-123", "uptime", 1)

        kwargs = s3_client.put_object.call_args.kwargs
        assert kwargs["Key"] == "prod/query/uptime:abc-123:1:42.json"
        assert kwargs["ContentLength"] == len(data)

    def test_client_error_wrapped(self, exporter, s3_client):
        """Test an S3 rejection surfaces as TransportError."""
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject"
        )

        with pytest.raises(TransportError) as exc_info:
            exporter.export(ExportContext(), "status", b"[]", "prod", "abc-123")

        error = exc_info.value
        assert error.exporter == "s3"
        assert error.details["bucket"] == "fleet-logs"
        assert isinstance(error.__cause__, ClientError)
        assert "failed to upload data to S3" in error.message

    def test_connection_error_wrapped(self, exporter, s3_client):
        s3_client.put_object.side_effect = EndpointConnectionError(endpoint_url="https://s3")

        with pytest.raises(TransportError) as exc_info:
            exporter.export_query(ExportContext(), b"{}", "prod", "abc-123", "q", 0)

        assert "failed to upload query result to S3" in exc_info.value.message

    def test_disabled_makes_no_calls(self, exporter, s3_client):
        exporter.set_enabled(False)

        exporter.export(ExportContext(), "status", b"[]", "prod", "abc-123")
        exporter.export_query(ExportContext(), b"{}", "prod", "abc-123", "q", 0)

        s3_client.put_object.assert_not_called()

    def test_cancelled_context_skips_upload(self, exporter, s3_client):
        ctx = ExportContext()
        ctx.cancel()

        with pytest.raises(ExportCancelledError):
            exporter.export(ctx, "status", b"[]", "prod", "abc-123")

        s3_client.put_object.assert_not_called()

    def test_configure(self, exporter):
        exporter.configure(StaticSettings(disabled={"s3"}))
        assert not exporter.is_enabled()


class TestS3ExporterConstruction:
    """Tests for building the boto3 client."""

    def test_build_client(self, s3_config):
        with patch("fleetship.exporters.s3.boto3.client") as mock_client:
            S3Exporter(s3_config)

        mock_client.assert_called_once()
        args, kwargs = mock_client.call_args
        assert args == ("s3",)
        assert kwargs["region_name"] == "us-west-2"
        assert kwargs["aws_access_key_id"] == "AKIAEXAMPLE"
        assert kwargs["aws_secret_access_key"] == "secret"
        assert kwargs["config"].retries == {"max_attempts": 0}

    def test_build_client_default_credentials(self):
        with patch("fleetship.exporters.s3.boto3.client") as mock_client:
            S3Exporter(S3Configuration(bucket="b", endpoint_url="http://minio:9000"))

        kwargs = mock_client.call_args.kwargs
        assert "aws_access_key_id" not in kwargs
        assert kwargs["endpoint_url"] == "http://minio:9000"

    def test_invalid_endpoint(self):
        with patch(
            "fleetship.exporters.s3.boto3.client",
            side_effect=ValueError("Invalid endpoint: not a url"),
        ):
            with pytest.raises(ConfigurationError) as exc_info:
                S3Exporter(S3Configuration(bucket="b", endpoint_url="not a url"))

        assert exc_info.value.backend == "s3"
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_invalid_region(self):
        with patch(
            "fleetship.exporters.s3.boto3.client",
            side_effect=InvalidRegionError(region_name="not a region"),
        ):
            with pytest.raises(ConfigurationError, match="Failed to create S3 client"):
                S3Exporter(S3Configuration(bucket="b", region="not a region"))

    def test_from_file(self, tmp_path):
        path = tmp_path / "logger.json"
        path.write_text(json.dumps({"s3": {"bucket": "from-file", "region": "eu-west-1"}}))

        with patch("fleetship.exporters.s3.boto3.client"):
            exporter = S3Exporter.from_file(path)

        assert exporter.config.bucket == "from-file"

    def test_from_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            S3Exporter.from_file(tmp_path / "missing.json")


class TestDetectContentType:
    """Tests for detect_content_type()."""

    @pytest.mark.parametrize(
        "data,expected",
        [
            (b'[{"pid": "1"}]', "text/plain; charset=utf-8"),
            (b"", "text/plain; charset=utf-8"),
            (b"\xef\xbb\xbf{}", "text/plain; charset=utf-8"),
            (b"\xff\xfe{\x00", "text/plain; charset=utf-16"),
            (b"  <html><body></body></html>", "text/html; charset=utf-8"),
            (b"<!-- comment -->", "text/html; charset=utf-8"),
            (b'<?xml version="1.0"?><a/>', "text/xml; charset=utf-8"),
            (b"%PDF-1.7", "application/pdf"),
            (b"\x1f\x8b\x08\x00", "application/x-gzip"),
            (b"\x89PNG\r\n\x1a\n", "image/png"),
            (b"\x00\x01\x02\x03", "application/octet-stream"),
        ],
    )
    def test_detect(self, data, expected):
        assert detect_content_type(data) == expected

    def test_tag_needs_terminator(self):
        """Test '<htmlx' is not mistaken for HTML."""
        assert detect_content_type(b"<htmlx") == "text/plain; charset=utf-8"
