from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from task_manager.logging_setup import _HANDLER_TAG, setup_logging
from task_manager.main import app
from task_manager.notifications import LoggingNotifier, SmtpNotifier, build_notifier, notify_safely
from task_manager.settings import get_settings


def _our_handlers():
    return [h for h in logging.getLogger().handlers if getattr(h, _HANDLER_TAG, False)]


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    level = root.level
    yield
    for h in _our_handlers():
        root.removeHandler(h)
        h.close()
    root.setLevel(level)


class TestLogging:
    def test_setup_is_idempotent_and_writes_file(self, tmp_path, restore_root_logging):
        log_file = tmp_path / "logs" / "app.log"
        setup_logging(level="DEBUG", log_file=log_file)
        setup_logging(level="DEBUG", log_file=log_file)
        assert len(_our_handlers()) == 2  # console + file, not duplicated

        logging.getLogger("task_manager.test").info("hello from test")
        for h in _our_handlers():
            h.flush()
        assert "INFO task_manager.test: hello from test" in log_file.read_text(encoding="utf-8")

    def test_lifespan_starts_without_scheduler(self, restore_root_logging):
        # ENABLE_REMINDERS=false in conftest
        with TestClient(app) as c:
            assert c.get("/").status_code == 200
            assert app.state.reminder_scheduler is None

    def test_lifespan_runs_and_stops_scheduler(self, monkeypatch, caplog, restore_root_logging):
        monkeypatch.setenv("ENABLE_REMINDERS", "true")
        monkeypatch.setenv("REMINDER_RUN_ON_STARTUP", "false")
        # Twelve hours away, so no sweep fires during the test
        monkeypatch.setenv("REMINDER_HOUR", str((datetime.now(timezone.utc).hour + 12) % 24))

        with caplog.at_level("INFO", logger="task_manager"):
            with TestClient(app) as c:
                assert c.get("/").status_code == 200
                scheduler = app.state.reminder_scheduler
                assert scheduler is not None
                assert not scheduler.done()

        assert scheduler.cancelled()
        assert "Reminder scheduler started" in caplog.text
        assert "Reminder scheduler stopped" in caplog.text


class TestNotifierSelection:
    def test_logging_notifier_without_smtp_host(self, monkeypatch):
        monkeypatch.delenv("SMTP_HOST", raising=False)
        assert isinstance(build_notifier(get_settings()), LoggingNotifier)

    def test_smtp_notifier_with_host(self, monkeypatch):
        monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
        monkeypatch.setenv("SMTP_TIMEOUT_SECONDS", "3")
        notifier = build_notifier(get_settings())
        assert isinstance(notifier, SmtpNotifier)
        assert notifier.timeout == 3.0

    def test_unreachable_relay_is_reported_not_raised(self):
        # Nothing listens on port 1 of localhost
        notifier = SmtpNotifier("127.0.0.1", 1, "from@example.com", use_tls=False, timeout=1.0)
        assert notify_safely(notifier, "to@example.com", "subject", "body") is False
