"""
Tests for MultiExporter.

Tests cover:
- Fan-out to every enabled member
- Failure aggregation without short-circuiting
- Member list changes while calls are in flight
- Configure and close propagation
"""

from __future__ import annotations

import threading

import pytest

from fleetship.config import StaticSettings
from fleetship.context import ExportContext
from fleetship.exceptions import AggregateExportError, ConfigurationError
from fleetship.exporters.multi import MultiExporter
from tests.conftest import RecordingExporter


class TestMultiExporterExport:
    """Tests for MultiExporter.export() and export_query()."""

    def test_all_members_receive(self):
        members = [RecordingExporter(f"sink-{i}") for i in range(3)]
        multi = MultiExporter(*members)

        multi.export(ExportContext(), "status", b"[]", "prod", "abc-123")

        for member in members:
            assert member.calls == [("export", "status", b"[]", "prod", "abc-123")]

    def test_one_failure_reported(self):
        """Test a single failure is named while every member is still invoked."""
        ok_1 = RecordingExporter("stdout")
        failing = RecordingExporter("s3", error=RuntimeError("access denied"))
        ok_2 = RecordingExporter("kafka")
        multi = MultiExporter(ok_1, failing, ok_2)

        with pytest.raises(AggregateExportError) as exc_info:
            multi.export(ExportContext(), "result", b"[]", "prod", "abc-123")

        assert exc_info.value.names == ["s3"]
        assert "access denied" in str(exc_info.value)
        assert len(ok_1.calls) == 1
        assert len(failing.calls) == 1
        assert len(ok_2.calls) == 1

    def test_all_failures_in_member_order(self):
        members = [
            RecordingExporter("a", error=RuntimeError("a failed")),
            RecordingExporter("b"),
            RecordingExporter("c", error=RuntimeError("c failed")),
        ]
        multi = MultiExporter(*members)

        with pytest.raises(AggregateExportError) as exc_info:
            multi.export_query(ExportContext(), b"{}", "prod", "abc-123", "uptime", 0)

        assert exc_info.value.names == ["a", "c"]
        assert exc_info.value.operation == "export_query"
        assert members[1].calls == [("export_query", b"{}", "prod", "abc-123", "uptime", 0)]

    def test_disabled_member_skipped(self):
        enabled = RecordingExporter("enabled")
        disabled = RecordingExporter("disabled", error=RuntimeError("should not run"))
        disabled.set_enabled(False)
        multi = MultiExporter(enabled, disabled)

        multi.export(ExportContext(), "status", b"[]", "prod", "abc-123")

        assert len(enabled.calls) == 1
        assert disabled.calls == []

    def test_disabled_multi_is_noop(self):
        member = RecordingExporter("member")
        multi = MultiExporter(member)
        multi.set_enabled(False)

        multi.export(ExportContext(), "status", b"[]", "prod", "abc-123")

        assert member.calls == []

    def test_no_members(self):
        MultiExporter().export(ExportContext(), "status", b"[]", "prod", "abc-123")

    def test_members_run_in_parallel(self):
        """Test members run concurrently: each waits until all have started."""
        barrier = threading.Barrier(3, timeout=5)

        class BarrierExporter(RecordingExporter):
            def export(self, ctx, log_type, data, environment, uuid):
                barrier.wait()
                super().export(ctx, log_type, data, environment, uuid)

        members = [BarrierExporter(f"sink-{i}") for i in range(3)]
        MultiExporter(*members).export(ExportContext(), "status", b"[]", "prod", "abc")

        assert all(len(m.calls) == 1 for m in members)


class TestMultiExporterMembers:
    """Tests for adding and removing members."""

    def test_add_and_remove(self):
        multi = MultiExporter(RecordingExporter("a"))
        multi.add_exporter(RecordingExporter("b"))
        assert multi.exporter_count == 2

        removed = multi.remove_exporter("a")
        assert removed is not None and removed.name == "a"
        assert [e.name for e in multi.exporters] == ["b"]
        assert multi.remove_exporter("missing") is None

    def test_snapshot_is_copy(self):
        multi = MultiExporter(RecordingExporter("a"))
        snapshot = multi.exporters
        snapshot.clear()
        assert multi.exporter_count == 1

    def test_add_during_flight(self):
        """Test adding a member while a call is in flight."""
        gate = threading.Event()
        slow = RecordingExporter("slow", gate=gate)
        multi = MultiExporter(slow)
        late = RecordingExporter("late")

        worker = threading.Thread(
            target=multi.export,
            args=(ExportContext(), "status", b"[]", "prod", "abc-123"),
        )
        worker.start()
        multi.add_exporter(late)
        gate.set()
        worker.join(timeout=5)

        assert not worker.is_alive()
        assert len(slow.calls) == 1
        assert multi.exporter_count == 2

        multi.export(ExportContext(), "status", b"[]", "prod", "abc-123")
        assert len(late.calls) >= 1


class TestMultiExporterLifecycle:
    """Tests for configure() and close()."""

    def test_configure_all_members(self):
        members = [RecordingExporter("a"), RecordingExporter("b")]
        multi = MultiExporter(*members)

        multi.configure(StaticSettings(disabled={"b"}))

        assert all(m.configured == 1 for m in members)
        assert members[0].is_enabled()
        assert not members[1].is_enabled()

    def test_configure_errors_aggregated(self):
        class BrokenConfigure(RecordingExporter):
            def configure(self, settings):
                raise RuntimeError("bad settings")

        ok = RecordingExporter("ok")
        multi = MultiExporter(BrokenConfigure("x"), ok, BrokenConfigure("y"))

        with pytest.raises(ConfigurationError) as exc_info:
            multi.configure(StaticSettings())

        message = exc_info.value.message
        assert message.startswith("configuration errors: [")
        assert "exporter x: bad settings" in message
        assert "exporter y: bad settings" in message
        assert ok.configured == 1

    def test_close_all_members(self):
        members = [RecordingExporter("a"), RecordingExporter("b")]
        MultiExporter(*members).close()
        assert all(m.closed == 1 for m in members)

    def test_close_errors_aggregated(self):
        class BrokenClose(RecordingExporter):
            def close(self):
                raise RuntimeError("flush failed")

        ok = RecordingExporter("ok")
        with pytest.raises(AggregateExportError) as exc_info:
            MultiExporter(BrokenClose("kafka"), ok).close()

        assert exc_info.value.names == ["kafka"]
        assert ok.closed == 1
