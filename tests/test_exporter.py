"""Tests for export file naming and writing."""

from datetime import datetime

import pytest

from procdeck.sessions.exporter import default_export_filename, write_export


class TestDefaultExportFilename:
    def test_sanitizes_name_and_adds_timestamp(self):
        name = default_export_filename("My App: dev/1", datetime(2024, 5, 1, 12, 30, 5))
        assert name == "My_App__dev_1-2024-05-01T12-30-05.log"

    def test_keeps_dash_and_underscore(self):
        name = default_export_filename("api-server_v2", datetime(2024, 1, 2, 3, 4, 5))
        assert name.startswith("api-server_v2-2024-01-02T03-04-05")

    def test_defaults_to_now(self):
        assert default_export_filename("x").endswith(".log")


class TestWriteExport:
    def test_writes_utf8_and_creates_parents(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "out.log"
        path = write_export(target, "héllo\n")
        assert path == target
        assert target.read_text(encoding="utf-8") == "héllo\n"

    def test_write_error_propagates(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a dir")
        with pytest.raises(OSError):
            write_export(blocker / "out.log", "data")
