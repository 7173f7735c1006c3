from __future__ import annotations

from datetime import date

import pytest

from utils.config import ConfigError, default_range_start, env_get_bool, load_env_config

_KEYS = [
    "ENV_FILE",
    "UNTIS_SCHOOL",
    "SCHOOL_NAME",
    "UNTIS_USERNAME",
    "USERNAME",
    "UNTIS_PASSWORD",
    "PASSWORD",
    "UNTIS_URL",
    "DISCORD_WEBHOOK_URL",
    "DISCORD_USER_ID",
    "CHECK_INTERVAL_SECONDS",
    "POLL_INTERVAL_SECONDS",
    "CHECK_INTERVAL_MINUTES",
    "POLL_INTERVAL_MINUTES",
    "RANGE_START",
    "ENABLE_TIMETABLE_SCANNING",
    "ENABLE_ABSENCE_SCANNING",
    "ENABLE_HOMEWORK_SCANNING",
    "ENABLE_EXAM_SCANNING",
    "ENABLE_ICAL_STREAMING",
    "ICAL_PORT",
    "WEB_SERVER_PORT",
    "DATABASE_URL",
    "DRY_RUN",
    "LOG_LEVEL",
]


@pytest.fixture
def clean_env(monkeypatch):
    for key in _KEYS:
        # setenv first so delenv restores the original value afterwards
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    return monkeypatch


def _write_env(tmp_path, text):
    p = tmp_path / ".env.config"
    p.write_text(text, encoding="utf-8")
    return str(p)


BASE = (
    "UNTIS_SCHOOL=demo\n"
    "UNTIS_USERNAME=jane\n"
    "UNTIS_PASSWORD=secret\n"
    "UNTIS_URL=demo.webuntis.com\n"
)


def test_loads_required_settings_and_defaults(clean_env, tmp_path):
    cfg = load_env_config(_write_env(tmp_path, BASE))
    assert (cfg.school, cfg.username, cfg.password) == ("demo", "jane", "secret")
    assert cfg.untis_url == "demo.webuntis.com"
    assert cfg.check_interval_seconds == 600
    assert cfg.enable_timetable and cfg.enable_exams
    assert not cfg.enable_ical and cfg.ical_port == 3000
    assert cfg.discord_webhook_url is None
    assert cfg.range_start.month == 9 and cfg.range_start.day == 1


def test_missing_credentials_are_reported(clean_env, tmp_path):
    path = _write_env(tmp_path, "UNTIS_SCHOOL=demo\n")
    with pytest.raises(ConfigError) as ei:
        load_env_config(path)
    assert "UNTIS_USERNAME" in str(ei.value) and "UNTIS_URL" in str(ei.value)


def test_optional_settings(clean_env, tmp_path):
    text = BASE + (
        "CHECK_INTERVAL_MINUTES=5\n"
        "RANGE_START=2024-09-02\n"
        "ENABLE_EXAM_SCANNING=false\n"
        "ENABLE_ICAL_STREAMING=true\n"
        "WEB_SERVER_PORT=8080\n"
        "DISCORD_USER_ID=1234\n"
        "LOG_LEVEL=debug\n"
    )
    cfg = load_env_config(_write_env(tmp_path, text))
    assert cfg.check_interval_seconds == 300
    assert cfg.range_start == date(2024, 9, 2)
    assert not cfg.enable_exams and cfg.enable_homework
    assert cfg.enable_ical and cfg.ical_port == 8080
    assert cfg.discord_user_id == "1234"
    assert cfg.log_level == "DEBUG"


def test_seconds_take_precedence_over_minutes(clean_env, tmp_path):
    text = BASE + "CHECK_INTERVAL_SECONDS=45\nCHECK_INTERVAL_MINUTES=5\n"
    assert load_env_config(_write_env(tmp_path, text)).check_interval_seconds == 45


def test_invalid_range_start(clean_env, tmp_path):
    with pytest.raises(ConfigError):
        load_env_config(_write_env(tmp_path, BASE + "RANGE_START=first of september\n"))


def test_env_file_variable_wins(clean_env, tmp_path):
    other = tmp_path / "other.env"
    other.write_text(BASE.replace("jane", "john"), encoding="utf-8")
    clean_env.setenv("ENV_FILE", str(other))
    cfg = load_env_config(_write_env(tmp_path, BASE))
    assert cfg.username == "john"


def test_default_range_start_follows_school_year():
    assert default_range_start(date(2024, 10, 3)) == date(2024, 9, 1)
    assert default_range_start(date(2025, 3, 3)) == date(2024, 9, 1)
    assert default_range_start(date(2025, 9, 1)) == date(2025, 9, 1)


def test_env_get_bool(clean_env):
    clean_env.setenv("DRY_RUN", "yes")
    assert env_get_bool("DRY_RUN") is True
    clean_env.setenv("DRY_RUN", "0")
    assert env_get_bool("DRY_RUN") is False
    clean_env.delenv("DRY_RUN")
    assert env_get_bool("DRY_RUN", default=True) is True
