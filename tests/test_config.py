from pathlib import Path

import pytest

from config.config import AppConfig, load_config, validate_config
from src.models.reminder import DEFAULT_MESSAGE_ID


def write_config(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_bundled_config_loads(monkeypatch) -> None:
    monkeypatch.setenv("WX_APPID", "wx-app")
    monkeypatch.setenv("WX_SECRET", "wx-secret")

    config = load_config()

    assert config.wechat.appid == "wx-app"
    assert config.scheduler.interval_seconds == 60
    assert config.scheduler.concurrency_limit == 5
    assert config.scheduler.retention_hours == 24
    assert config.reminders.default_message_id == DEFAULT_MESSAGE_ID
    assert validate_config(config) == []


def test_env_defaults_are_expanded(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("REMINDER_INTERVAL", raising=False)
    path = write_config(tmp_path, "scheduler:\n  interval_seconds: ${REMINDER_INTERVAL:30}\n")

    config = load_config(path)

    assert config.scheduler.interval_seconds == 30
    assert config.scheduler.enabled is True


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml")


def test_invalid_values_raise(tmp_path) -> None:
    path = write_config(tmp_path, "scheduler:\n  concurrency_limit: 0\n")
    with pytest.raises(ValueError):
        load_config(path)


def test_validate_reports_missing_credentials(monkeypatch) -> None:
    monkeypatch.delenv("WX_APPID", raising=False)
    monkeypatch.delenv("WX_SECRET", raising=False)

    errors = validate_config(AppConfig())

    assert "WX_APPID is not set" in errors
    assert "WX_SECRET is not set" in errors
