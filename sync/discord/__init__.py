"""Discord utilities: webhook client, notifiers, message formatting."""

from __future__ import annotations

from .core import DiscordNotifier, DiscordWebhook, LogNotifier, build_notifier
from .formatting import format_changes, summarize_changes, truncate_message

__all__ = [
    "DiscordWebhook",
    "DiscordNotifier",
    "LogNotifier",
    "build_notifier",
    "format_changes",
    "summarize_changes",
    "truncate_message",
]
