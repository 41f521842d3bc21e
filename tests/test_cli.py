"""Tests for the command line interface."""

import json
import logging
import sys
from unittest.mock import patch

from objectsync.__main__ import JSONFormatter, NamespaceFilter, _mask, main
from objectsync.errors import ErrorCode, ObjectSyncError


def make_record(name: str, level: int, exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name=name,
        level=level,
        pathname=__file__,
        lineno=1,
        msg="message",
        args=(),
        exc_info=exc_info,
    )


class TestJSONFormatter:
    """Tests for structured log output."""

    def test_format(self):
        record = logging.LogRecord(
            name="objectsync.runner",
            level=logging.WARNING,
            pathname=__file__,
            lineno=1,
            msg="Retrying %s",
            args=("GET",),
            exc_info=None,
        )

        data = json.loads(JSONFormatter().format(record))

        assert data["level"] == "WARNING"
        assert data["component"] == "objectsync.runner"
        assert data["message"] == "Retrying GET"
        assert "exception" not in data

    def test_format_exception(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord(
                name="objectsync",
                level=logging.ERROR,
                pathname=__file__,
                lineno=1,
                msg="failed",
                args=(),
                exc_info=sys.exc_info(),
            )

        data = json.loads(JSONFormatter().format(record))

        assert "RuntimeError: boom" in data["exception"]
        assert "error_code" not in data

    def test_format_object_sync_error(self):
        """Test failures report their error code and HTTP status."""
        try:
            raise ObjectSyncError(ErrorCode.OBJECT_NOT_FOUND, "Object not found.", status_code=404)
        except ObjectSyncError:
            record = make_record("objectsync.cli", logging.DEBUG, exc_info=sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert data["error_code"] == "OBJECT_NOT_FOUND"
        assert data["status_code"] == 404


class TestNamespaceFilter:
    """Tests for filtering third-party log records."""

    def test_own_records_pass(self):
        namespace_filter = NamespaceFilter()

        assert namespace_filter.filter(make_record("objectsync", logging.DEBUG))
        assert namespace_filter.filter(make_record("objectsync.runner", logging.INFO))

    def test_library_records_need_warning(self):
        namespace_filter = NamespaceFilter()

        assert not namespace_filter.filter(make_record("httpx", logging.INFO))
        assert namespace_filter.filter(make_record("httpx", logging.WARNING))

    def test_prefix_is_not_enough(self):
        assert not NamespaceFilter().filter(make_record("objectsyncer", logging.INFO))


def test_mask():
    assert _mask(None) is None
    assert _mask("abc") == "..."
    assert _mask("secret-key") == "secr..."


class TestMain:
    """Tests for argument handling."""

    def test_no_command(self, capsys):
        with patch.object(sys, "argv", ["objectsync"]):
            assert main() == 1

        assert "usage" in capsys.readouterr().out

    def test_config_masks_keys(self, tmp_path, capsys):
        config_file = tmp_path / "objectsync.yaml"
        config_file.write_text(
            "server:\n  application_id: my-app\n  master_key: master-secret\n"
        )

        with patch.object(sys, "argv", ["objectsync", "-c", str(config_file), "config"]):
            assert main() == 0

        output = json.loads(capsys.readouterr().out)
        assert output["server"]["application_id"] == "my-app"
        assert output["server"]["master_key"] == "mast..."

    def test_installation_id(self, tmp_path, capsys, monkeypatch):
        monkeypatch.setenv("OBJECTSYNC_STORAGE_DB_PATH", str(tmp_path / "storage.db"))

        with patch.object(sys, "argv", ["objectsync", "installation-id"]):
            assert main() == 0
        first = capsys.readouterr().out.strip()

        with patch.object(sys, "argv", ["objectsync", "installation-id"]):
            assert main() == 0
        second = capsys.readouterr().out.strip()

        assert first == second
        assert len(first) == 36

    def test_request_invalid_data(self, capsys):
        with patch.object(
            sys, "argv", ["objectsync", "request", "POST", "classes/Foo", "-d", "{nope"]
        ):
            assert main() == 1

        assert "Invalid --data JSON" in capsys.readouterr().err
