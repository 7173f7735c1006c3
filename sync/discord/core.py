"""Discord core primitives: webhook client and notifiers."""

from __future__ import annotations

import json
import urllib.error as _urlerr
import urllib.request
from collections.abc import Sequence
from typing import Any

from loguru import logger

from sync.engine.diff import Change
from sync.engine.reconcile import BaseNotifier
from untis.models import FeedKind
from utils.errors import NotifyError

from .formatting import format_changes, summarize_changes

# -------------------- API --------------------


class DiscordWebhook:
    """Thin HTTP wrapper for a Discord webhook using stdlib only."""

    user_agent = "untis-notify (https://discord.com/developers/docs/resources/webhook, 1.0)"

    def __init__(self, url: str, *, timeout: int = 15) -> None:
        self.url = url
        self.timeout = timeout

    def execute(self, content: str, **extra: Any) -> int:
        """POST a message; returns the HTTP status code."""
        body = {"content": content, **extra}
        req = urllib.request.Request(
            self.url,
            data=json.dumps(body).encode("utf-8"),
            headers={"Content-Type": "application/json", "User-Agent": self.user_agent},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return int(resp.status)
        except _urlerr.HTTPError as e:
            txt = e.read().decode("utf-8", errors="ignore") if hasattr(e, "read") else str(e)
            raise NotifyError(f"Discord HTTP {e.code} {e.reason}: {txt[:200]}") from e
        except (_urlerr.URLError, TimeoutError) as e:
            raise NotifyError(f"Discord webhook unreachable: {e}") from e


# -------------------- Notifiers --------------------


class DiscordNotifier(BaseNotifier):
    """One webhook message per cycle, mentioning the configured user."""

    def __init__(self, webhook_url: str, *, user_id: str | None = None) -> None:
        self.webhook = DiscordWebhook(webhook_url)
        self.user_id = user_id

    def notify(self, kind: FeedKind, changes: Sequence[Change]) -> None:
        text = format_changes(kind, changes, user_id=self.user_id)
        if not text:
            logger.debug("Nothing to send for {} ({})", kind.value, summarize_changes(changes))
            return
        logger.debug("Message to be sent:\n{}", text)
        status = self.webhook.execute(text)
        logger.info("Webhook sent for {} (HTTP {})", kind.value, status)


class LogNotifier(BaseNotifier):
    """Writes the would-be message to the log; used when no webhook is configured."""

    def notify(self, kind: FeedKind, changes: Sequence[Change]) -> None:
        text = format_changes(kind, changes)
        logger.info("{} changes ({}):\n{}", kind.value, summarize_changes(changes), text)


def build_notifier(webhook_url: str | None, *, user_id: str | None = None) -> BaseNotifier:
    if webhook_url:
        return DiscordNotifier(webhook_url, user_id=user_id)
    logger.debug("DISCORD_WEBHOOK_URL not set; changes will only be logged")
    return LogNotifier()
