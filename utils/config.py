from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from datetime import date

from dotenv import load_dotenv
from loguru import logger


class ConfigError(Exception):
    pass


DEFAULT_TZ = "Europe/Berlin"
DEFAULT_CHECK_INTERVAL = 600


def env_get(key: str, *aliases: str, default: str | None = None) -> str | None:
    """Return the first non-empty value from env among `key` and `aliases`."""

    for k in (key, *aliases):
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v
    return default


def env_get_bool(key: str, *aliases: str, default: bool | None = None) -> bool | None:
    """Parse a boolean value from env for `key`/`aliases` if present."""

    v = env_get(key, *aliases)
    if v is None:
        return default
    return str(v).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_get_int(key: str, *aliases: str, default: int) -> int:
    v = env_get(key, *aliases)
    if v is None:
        return default
    try:
        return int(str(v).strip())
    except ValueError:
        logger.warning("Invalid integer for {}: {!r}; using {}", key, v, default)
        return default


def default_range_start(today: date | None = None) -> date:
    """First of September of the current school year."""

    today = today or date.today()
    year = today.year if today.month >= 9 else today.year - 1
    return date(year, 9, 1)


@dataclass
class AppConfig:
    school: str
    username: str
    password: str
    untis_url: str
    # Discord
    discord_webhook_url: str | None = None
    discord_user_id: str | None = None
    # Polling
    check_interval_seconds: int = DEFAULT_CHECK_INTERVAL
    range_start: date = field(default_factory=default_range_start)
    enable_timetable: bool = True
    enable_absences: bool = True
    enable_homework: bool = True
    enable_exams: bool = True
    dry_run: bool = False
    enable_console: bool = True
    timezone: str = DEFAULT_TZ
    # State
    state_dir: str = "var/state"
    database_url: str | None = None
    # iCal export
    enable_ical: bool = False
    ical_host: str = "127.0.0.1"
    ical_port: int = 3000
    ical_path: str = "var/timetable.ics"
    # Logging
    log_level: str = "INFO"
    log_file: str | None = None
    log_color: bool | None = None


def load_env_config(env_path: str) -> AppConfig:
    """Load configuration from a .env-style file and the environment."""

    def _try_load(paths: list[str]) -> bool:
        for p in paths:
            if p and os.path.isfile(p) and load_dotenv(p):
                logger.debug("Loaded configuration file: {}", p)
                return True
        return False

    candidates: list[str] = []
    if env_path:
        if os.path.isabs(env_path):
            candidates.append(env_path)
        else:
            candidates.append(os.path.join(os.getcwd(), env_path))
    env_file_env = os.getenv("ENV_FILE")
    if env_file_env:
        candidates.insert(0, env_file_env)
    if not _try_load(candidates):
        load_dotenv(env_path)

    school = env_get("UNTIS_SCHOOL", "SCHOOL_NAME")
    username = env_get("UNTIS_USERNAME", "USERNAME")
    password = env_get("UNTIS_PASSWORD", "PASSWORD")
    untis_url = env_get("UNTIS_URL")

    missing = [
        name
        for name, value in (
            ("UNTIS_SCHOOL", school),
            ("UNTIS_USERNAME", username),
            ("UNTIS_PASSWORD", password),
            ("UNTIS_URL", untis_url),
        )
        if not value
    ]
    if missing:
        msg = "Missing required settings: " + ", ".join(missing)
        logger.error(msg)
        raise ConfigError(msg)

    # Interval: allow either seconds or minutes
    interval_sec = env_get_int("CHECK_INTERVAL_SECONDS", "POLL_INTERVAL_SECONDS", default=0)
    interval_min = env_get_int("CHECK_INTERVAL_MINUTES", "POLL_INTERVAL_MINUTES", default=0)
    check_interval_seconds = (
        interval_sec
        if interval_sec > 0
        else (interval_min * 60 if interval_min > 0 else DEFAULT_CHECK_INTERVAL)
    )

    range_start_raw = env_get("RANGE_START")
    range_start = default_range_start()
    if range_start_raw:
        try:
            range_start = date.fromisoformat(range_start_raw.strip()[:10])
        except ValueError as e:
            raise ConfigError(f"RANGE_START must be an ISO date, got {range_start_raw!r}") from e

    return AppConfig(
        school=school.strip(),
        username=username.strip(),
        password=password,
        untis_url=untis_url.strip(),
        discord_webhook_url=env_get("DISCORD_WEBHOOK_URL"),
        discord_user_id=env_get("DISCORD_USER_ID"),
        check_interval_seconds=check_interval_seconds,
        range_start=range_start,
        enable_timetable=bool(env_get_bool("ENABLE_TIMETABLE_SCANNING", default=True)),
        enable_absences=bool(env_get_bool("ENABLE_ABSENCE_SCANNING", default=True)),
        enable_homework=bool(env_get_bool("ENABLE_HOMEWORK_SCANNING", default=True)),
        enable_exams=bool(env_get_bool("ENABLE_EXAM_SCANNING", default=True)),
        dry_run=bool(env_get_bool("DRY_RUN", default=False)),
        enable_console=bool(env_get_bool("ENABLE_CONSOLE", default=True)),
        timezone=env_get("TIMEZONE", "TZ", default=DEFAULT_TZ) or DEFAULT_TZ,
        state_dir=env_get("STATE_DIR", default="var/state") or "var/state",
        database_url=env_get("DATABASE_URL"),
        enable_ical=bool(env_get_bool("ENABLE_ICAL_STREAMING", default=False)),
        ical_host=env_get("ICAL_HOST", default="127.0.0.1") or "127.0.0.1",
        ical_port=env_get_int("ICAL_PORT", "WEB_SERVER_PORT", default=3000),
        ical_path=env_get("ICAL_PATH", default="var/timetable.ics") or "var/timetable.ics",
        log_level=(env_get("LOG_LEVEL", default="INFO") or "INFO").upper(),
        log_file=env_get("LOG_FILE"),
        log_color=env_get_bool("LOG_COLOR", default=None),
    )


def setup_logging(
    level: str = "INFO", log_file: str | None = None, color: bool | None = None
) -> None:
    """Configure loguru sinks for console and optional file."""

    logger.remove()
    fmt_color = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | <level>{message}</level>"
    )
    fmt_plain = (
        "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}"
    )
    logger.add(
        sys.stderr,
        level=level,
        colorize=(True if color is None else bool(color)),
        backtrace=True,
        diagnose=False,
        format=fmt_color if (color is None or color) else fmt_plain,
    )
    if log_file:
        # Defaults: rotate at 10 MB, keep 7 days, compress as zip.
        rotation = env_get("LOG_ROTATION", default="10 MB") or "10 MB"
        retention = env_get("LOG_RETENTION", default="7 days") or "7 days"
        compression = env_get("LOG_COMPRESSION", default="zip") or "zip"
        try:
            d = os.path.dirname(log_file)
            if d and not os.path.exists(d):
                os.makedirs(d, exist_ok=True)
        except OSError as e:
            logger.warning("Could not create log directory for '{}': {}", log_file, e)
        logger.add(
            log_file,
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            enqueue=True,
            backtrace=True,
            diagnose=False,
            format=fmt_plain,
        )
