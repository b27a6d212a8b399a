from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from saed_portal import telemetry
from saed_portal.config import Settings, get_settings
from saed_portal.logging_config import configure_logging
from saed_portal.portal import create_portal

from conftest import FakeGateway


@pytest.fixture()
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


def test_settings_read_from_environment(_isolated_env: pytest.MonkeyPatch) -> None:
    _isolated_env.setenv("SAED_BACKEND_URL", "https://project.example.co")
    _isolated_env.setenv("SAED_PROFILE_FETCH_ATTEMPTS", "5")
    _isolated_env.setenv("SAED_USE_SAMPLE_DIRECTORY", "false")

    settings = Settings()  # type: ignore[call-arg]

    assert settings.backend_url == "https://project.example.co"
    assert settings.profile_fetch_attempts == 5
    assert settings.profile_fetch_delay_ms == 800
    assert settings.min_password_length == 6
    assert settings.use_sample_directory is False


def test_invalid_configuration_is_reported(_isolated_env: pytest.MonkeyPatch) -> None:
    _isolated_env.setenv("SAED_PROFILE_FETCH_ATTEMPTS", "0")

    with pytest.raises(RuntimeError, match="Invalid portal configuration"):
        get_settings()


def test_emit_event_fans_out_and_sanitizes(events) -> None:
    stamp = datetime(2026, 1, 15, tzinfo=timezone.utc)

    telemetry.emit_event("directory_refreshed", at=stamp, updated=["instructors"])

    assert events[0].name == "directory_refreshed"
    assert events[0].payload == {"at": stamp.isoformat(), "updated": ["instructors"]}


def test_failing_listener_does_not_break_emit(events, caplog: pytest.LogCaptureFixture) -> None:
    def _boom(event: telemetry.TelemetryEvent) -> None:
        raise ValueError("listener broke")

    telemetry.register_listener(_boom)

    with caplog.at_level(logging.INFO, logger="saed_portal.telemetry"):
        telemetry.emit_event("auth_action", outcome="success")

    assert len(events) == 1
    assert "Telemetry listener failed" in caplog.text
    assert "TELEMETRY" in caplog.text


def test_listener_can_be_removed() -> None:
    seen = []
    remove = telemetry.register_listener(seen.append)

    telemetry.emit_event("session_boot", outcome="guest")
    remove()
    telemetry.emit_event("session_boot", outcome="guest")

    assert len(seen) == 1


def test_nested_payloads_are_detached(events) -> None:
    faults = {"instructors": "schema"}

    telemetry.emit_event("directory_refreshed", updated=("corpers",), faults=faults)
    faults["staff"] = "error"

    assert events[0].payload == {"updated": ["corpers"], "faults": {"instructors": "schema"}}


@pytest.fixture()
def _restore_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    http_levels = {name: logging.getLogger(name).level for name in ("httpx", "httpcore")}
    yield
    root.handlers = handlers
    root.setLevel(level)
    for name, value in http_levels.items():
        logging.getLogger(name).setLevel(value)


def test_configure_logging_reads_environment(monkeypatch: pytest.MonkeyPatch, _restore_logging) -> None:
    monkeypatch.setenv("SAED_LOG_LEVEL", "warning")
    monkeypatch.setenv("SAED_DEBUG_HTTP", "1")

    configure_logging()

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.DEBUG


def test_http_logs_quiet_by_default(
    monkeypatch: pytest.MonkeyPatch, settings: Settings, _restore_logging
) -> None:
    monkeypatch.delenv("SAED_DEBUG_HTTP", raising=False)
    monkeypatch.setenv("SAED_LOG_LEVEL", "DEBUG")

    create_portal(settings, gateway=FakeGateway(), configure_logs=True)

    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
