"""Zero-CLI entrypoint and application orchestration.

Reads configuration from `.env.config` and environment variables, then wires
the WebUntis fetcher, the snapshot store and the Discord notifier into a
reconciler, starts polling for every enabled feed, optionally serves the
timetable as iCal, and listens for operator commands on stdin.
"""

from __future__ import annotations

import sys

from loguru import logger

from sync.discord import build_notifier
from sync.engine import CommandConsole, PollScheduler, Reconciler, get_store
from sync.serve.timetable_server import make_ical_hook, start_ical_server_background
from untis import FeedKind, UntisFetcher, WebUntisAPI
from utils.config import AppConfig, ConfigError, load_env_config, setup_logging

VERSION = "1.0.1"


def enabled_kinds(cfg: AppConfig) -> list[FeedKind]:
    flags = {
        FeedKind.TIMETABLE: cfg.enable_timetable,
        FeedKind.EXAM: cfg.enable_exams,
        FeedKind.HOMEWORK: cfg.enable_homework,
        FeedKind.ABSENCE: cfg.enable_absences,
    }
    return [kind for kind, on in flags.items() if on]


def build_reconciler(cfg: AppConfig) -> Reconciler:
    def connect() -> WebUntisAPI:
        return WebUntisAPI(cfg.school, cfg.username, cfg.password, cfg.untis_url)

    fetcher = UntisFetcher(connect, range_start=cfg.range_start)
    store = get_store(cfg.database_url, cfg.state_dir)
    notifier = build_notifier(cfg.discord_webhook_url, user_id=cfg.discord_user_id)
    hook = make_ical_hook(path=cfg.ical_path, timezone=cfg.timezone) if cfg.enable_ical else None
    return Reconciler(fetcher, store, notifier, dry_run=cfg.dry_run, on_fetched=hook)


def run(env_path: str = ".env.config") -> None:
    try:
        cfg: AppConfig = load_env_config(env_path)
    except ConfigError as ce:
        logger.error("Configuration error: {}", ce)
        sys.exit(2)

    setup_logging(level=cfg.log_level, log_file=cfg.log_file, color=cfg.log_color)
    logger.info("untis-notify {} starting for {} ({})", VERSION, cfg.username, cfg.school)
    logger.debug(
        "Settings: interval={}s, range_start={}, dry_run={}, ical={}, state={}",
        cfg.check_interval_seconds,
        cfg.range_start,
        cfg.dry_run,
        cfg.enable_ical,
        cfg.database_url and "database" or cfg.state_dir,
    )
    if cfg.dry_run:
        logger.info("Dry-run: notifications are logged, not sent")

    reconciler = build_reconciler(cfg)

    if cfg.enable_ical:
        start_ical_server_background(host=cfg.ical_host, port=cfg.ical_port, ics_path=cfg.ical_path)

    scheduler = PollScheduler(
        reconciler, enabled_kinds(cfg), interval_seconds=cfg.check_interval_seconds
    )
    scheduler.start()

    try:
        if cfg.enable_console and sys.stdin.isatty():
            CommandConsole(scheduler).run()
        else:
            logger.info("Running without console. Press Ctrl+C to exit…")
            scheduler.join()
    except KeyboardInterrupt:
        logger.info("Stopping on Ctrl+C")
    finally:
        scheduler.stop()


if __name__ == "__main__":
    run(".env.config")
