"""
Keystone — Logging Service Tests
==================================

What:  Sink routing, severity threshold and error-field normalisation of
       LoggerService.
How:   Console output goes to a StringIO; file sinks write into tmp_path.

Test Strategy:
    ✅ One console line and one general-file line per call at/above threshold
    ✅ ERROR additionally lands in the error file
    ✅ Calls below threshold reach no sink
    ✅ stack/context folded into a single `context` field
    ✅ Module loggers flow through installed sinks
"""

import io
import json
import logging
from datetime import datetime

import pytest

from keystone.config import LoggerSettings
from keystone.services.logger_service import VERBOSE, LoggerService, LogLevel


def _today() -> str:
    return datetime.now().strftime("%Y-%m-%d")


def _file_lines(path):
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


@pytest.fixture
def make_service(clean_env, log_dir):
    services = []

    def factory(level="info", max_files=0):
        stream = io.StringIO()
        settings = LoggerSettings(level=level, max_files=max_files, directory=str(log_dir), _env_file=())
        service = LoggerService(settings, stream=stream, name="keystone.test").install()
        services.append(service)
        return service, stream

    yield factory

    for service in services:
        service.close()


def _console_lines(stream):
    return [line for line in stream.getvalue().splitlines() if line]


class TestLogLevel:
    """Tests for the severity mapping."""

    def test_numeric_levels(self):
        assert LogLevel.ERROR.numeric == logging.ERROR
        assert LogLevel.WARN.numeric == logging.WARNING
        assert LogLevel.INFO.numeric == logging.INFO
        assert LogLevel.DEBUG.numeric == logging.DEBUG
        assert LogLevel.VERBOSE.numeric == VERBOSE

    def test_verbose_level_name(self):
        assert logging.getLevelName(VERBOSE) == "VERBOSE"


class TestSinkRouting:
    """Each call reaches exactly the sinks its severity allows."""

    def test_info_goes_to_console_and_general_file(self, make_service, log_dir):
        service, stream = make_service()

        service.info("Server ready", context="Bootstrap")

        console = _console_lines(stream)
        general = _file_lines(log_dir / f"app.{_today()}.log")
        errors = _file_lines(log_dir / f"app-error.{_today()}.log")
        assert len(console) == 1
        assert "[INFO] [Bootstrap] Server ready" in console[0]
        assert len(general) == 1
        assert general[0]["message"] == "Server ready"
        assert general[0]["level"] == "info"
        assert general[0]["context"] == "Bootstrap"
        assert errors == []

    def test_error_also_goes_to_error_file(self, make_service, log_dir):
        service, stream = make_service()

        service.error("Payment failed", context="Billing")

        assert len(_console_lines(stream)) == 1
        general = _file_lines(log_dir / f"app.{_today()}.log")
        errors = _file_lines(log_dir / f"app-error.{_today()}.log")
        assert len(general) == 1
        assert len(errors) == 1
        assert errors[0]["level"] == "error"
        assert errors[0]["message"] == "Payment failed"

    def test_warn_level(self, make_service, log_dir):
        service, stream = make_service()
        service.warn("Disk almost full")
        general = _file_lines(log_dir / f"app.{_today()}.log")
        assert general[0]["level"] == "warn"
        assert not (log_dir / f"app-error.{_today()}.log").exists()

    def test_module_warning_uses_service_level_name(self, make_service, log_dir):
        make_service()
        logging.getLogger("keystone.test.disk").warning("Disk almost full")
        logging.getLogger("keystone.test.disk").critical("Disk full")
        levels = [line["level"] for line in _file_lines(log_dir / f"app.{_today()}.log")]
        assert levels == ["warn", "critical"]

    def test_below_threshold_reaches_no_sink(self, make_service, log_dir):
        service, stream = make_service(level="warn")

        service.info("ignored")
        service.debug("ignored")
        service.verbose("ignored")

        assert _console_lines(stream) == []
        assert _file_lines(log_dir / f"app.{_today()}.log") == []

    def test_verbose_threshold_accepts_everything(self, make_service, log_dir):
        service, stream = make_service(level="verbose")

        service.verbose("v")
        service.debug("d")
        service.info("i")
        service.warn("w")
        service.error("e")

        assert len(_console_lines(stream)) == 5
        assert len(_file_lines(log_dir / f"app.{_today()}.log")) == 5
        assert len(_file_lines(log_dir / f"app-error.{_today()}.log")) == 1

    def test_log_alias_is_info(self, make_service, log_dir):
        service, _ = make_service()
        service.log("hello")
        assert _file_lines(log_dir / f"app.{_today()}.log")[0]["level"] == "info"


class TestErrorNormalisation:
    """stack and context end up in one structured field."""

    def test_stack_becomes_context(self, make_service, log_dir):
        service, _ = make_service()
        service.error("Boom", stack="Traceback: line 1")
        record = _file_lines(log_dir / f"app-error.{_today()}.log")[0]
        assert record["context"] == "Traceback: line 1"
        assert "stack" not in record

    def test_context_wins_and_stack_is_kept(self, make_service, log_dir):
        service, _ = make_service()
        service.error("Boom", stack="Traceback: line 1", context="Worker")
        record = _file_lines(log_dir / f"app-error.{_today()}.log")[0]
        assert record["context"] == "Worker"
        assert record["stack"] == "Traceback: line 1"

    def test_no_context_uses_logger_name(self, make_service, log_dir):
        service, _ = make_service()
        service.error("Boom")
        record = _file_lines(log_dir / f"app-error.{_today()}.log")[0]
        assert record["context"] == "keystone.test"

    def test_exception_info_serialised(self, make_service, log_dir):
        make_service()
        try:
            raise RuntimeError("kaput")
        except RuntimeError:
            logging.getLogger("keystone.test.worker").exception("Job crashed")
        record = _file_lines(log_dir / f"app-error.{_today()}.log")[0]
        assert "RuntimeError: kaput" in record["stack"]


class TestInstallation:
    """Sink attachment and teardown."""

    def test_module_loggers_use_installed_sinks(self, make_service, log_dir):
        _, stream = make_service()
        logging.getLogger("keystone.test.module").info("from a module")
        assert any("from a module" in line for line in _console_lines(stream))

    def test_install_twice_does_not_duplicate(self, make_service, log_dir):
        service, stream = make_service()
        service.install()
        service.info("once")
        assert len(_console_lines(stream)) == 1

    def test_close_detaches_sinks(self, clean_env, log_dir):
        stream = io.StringIO()
        settings = LoggerSettings(directory=str(log_dir), _env_file=())
        root = logging.getLogger()
        previous_level = root.level
        service = LoggerService(settings, stream=stream, name="keystone.test").install()

        service.close()
        service.info("after close")

        assert _console_lines(stream) == []
        assert all(handler not in root.handlers for handler in service.sinks)
        assert root.level == previous_level

    def test_audit_manifests_written(self, make_service, log_dir):
        service, _ = make_service(max_files=7)
        service.error("audited")
        general = json.loads((log_dir / ".audit" / "app.json").read_text(encoding="utf-8"))
        errors = json.loads((log_dir / ".audit" / "app-error.json").read_text(encoding="utf-8"))
        assert general["keep"]["amount"] == 7
        assert general["files"][0]["name"].endswith(f"app.{_today()}.log")
        assert errors["files"][0]["name"].endswith(f"app-error.{_today()}.log")
