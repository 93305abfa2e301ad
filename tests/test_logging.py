import json
import logging

import pytest

from portscope.core import enhanced_logging
from portscope.core.enhanced_logging import init_enhanced_logging, log_audit_event


@pytest.fixture
def installed(tmp_path):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    setup = init_enhanced_logging(logs_dir=tmp_path, level="debug")
    try:
        yield setup
    finally:
        setup.close()
        enhanced_logging.enhanced_logger = None
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def flush(setup):
    for handler in setup.handlers:
        handler.flush()


def test_log_files_are_created(installed, tmp_path):
    assert installed.level == logging.DEBUG
    for name in ("app.log", "errors.log", "audit.log"):
        assert (tmp_path / name).exists()


def test_errors_reach_the_error_log_only_at_error_level(installed, tmp_path):
    log = logging.getLogger("portscope.test")
    log.info("probe settled")
    log.error("scheduler broke")
    flush(installed)

    errors = (tmp_path / "errors.log").read_text()
    assert "scheduler broke" in errors
    assert "probe settled" not in errors
    assert "probe settled" in (tmp_path / "app.log").read_text()


def test_audit_events_are_json_and_kept_out_of_app_log(installed, tmp_path):
    log_audit_event("scan_completed", {"host": "203.0.113.5", "open": 1})
    flush(installed)

    line = (tmp_path / "audit.log").read_text().strip().splitlines()[-1]
    record = json.loads(line.split(" - AUDIT - ", 1)[1])
    assert record["event_type"] == "scan_completed"
    assert record["details"] == {"host": "203.0.113.5", "open": 1}
    assert "scan_completed" not in (tmp_path / "app.log").read_text()


def test_reinitializing_closes_previous_handlers(installed, tmp_path):
    old_handlers = list(installed.handlers)
    replacement = init_enhanced_logging(logs_dir=tmp_path / "second", level="INFO")
    try:
        root = logging.getLogger()
        assert not any(h in root.handlers for h in old_handlers)
        assert (tmp_path / "second" / "app.log").exists()
    finally:
        replacement.close()
