"""Reconciliation cycle: fetch → normalize → diff → notify → persist."""

from __future__ import annotations

import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any

from loguru import logger

from untis.models import FeedKind, Lesson, Record
from untis.normalize import normalize_records
from utils import _log_samples, date_from_untis_string
from utils.errors import NotifyError, UntisNotifyError

from .diff import Change, New, compute_diff, count_changes
from .store import BaseSnapshotStore


class BaseFetcher:
    def fetch(self, kind: FeedKind) -> list[Mapping[str, Any]]:  # pragma: no cover - interface
        raise NotImplementedError


class BaseNotifier:
    def notify(self, kind: FeedKind, changes: Sequence[Change]) -> None:  # pragma: no cover
        """Deliver one batched notification; raise NotifyError on failure."""
        raise NotImplementedError


@dataclass
class CycleReport:
    kind: FeedKind
    status: str  # ok | rollover | busy | failed
    changes: list[Change] = field(default_factory=list)
    notified: bool = False
    persisted: bool = False
    error: str | None = None


def latest_lesson_date(lessons: Sequence[Record]) -> int | None:
    dates = [r.date for r in lessons if isinstance(r, Lesson)]
    return max(dates) if dates else None


def is_day_rollover(marker: int | None, newest: int | None) -> bool:
    """True when `newest` is exactly one calendar day after `marker`."""

    if marker is None or newest is None:
        return False
    try:
        last = date_from_untis_string(str(marker))
        new = date_from_untis_string(str(newest))
    except ValueError:
        logger.warning("Ignoring unparseable timetable marker {!r}", marker)
        return False
    return new == last + timedelta(days=1)


class Reconciler:
    """Owns the fetcher, the snapshot store and the notifier for all cycles.

    At most one cycle per feed kind runs at a time; a cycle requested while
    another one for the same kind is in flight is dropped.
    """

    def __init__(
        self,
        fetcher: BaseFetcher,
        store: BaseSnapshotStore,
        notifier: BaseNotifier,
        *,
        dry_run: bool = False,
        on_fetched: Callable[[FeedKind, list[Record]], None] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.notifier = notifier
        self.dry_run = dry_run
        self.on_fetched = on_fetched
        self._locks = {kind: threading.Lock() for kind in FeedKind}

    def is_running(self, kind: FeedKind) -> bool:
        return self._locks[kind].locked()

    def reconcile(self, kind: FeedKind) -> CycleReport:
        lock = self._locks[kind]
        if not lock.acquire(blocking=False):
            logger.warning("A {} check is already running; skipping this one", kind.value)
            return CycleReport(kind, "busy")
        try:
            return self._run_cycle(kind)
        except UntisNotifyError as e:
            logger.opt(exception=e).error("{} check failed: {}", kind.value.capitalize(), e)
            return CycleReport(kind, "failed", error=str(e))
        except Exception as e:
            logger.exception("Unexpected failure while checking {}", kind.value)
            return CycleReport(kind, "failed", error=str(e))
        finally:
            lock.release()

    def _run_cycle(self, kind: FeedKind) -> CycleReport:
        logger.info("[UNTIS] Checking for {}...", kind.value)
        raw = self.fetcher.fetch(kind)
        records = normalize_records(kind, raw)
        _log_samples(records)
        self._run_hook(kind, records)

        previous = self.store.load(kind)

        newest: int | None = None
        if kind is FeedKind.TIMETABLE:
            newest = latest_lesson_date(records)
            marker = self.store.load_marker()
            if is_day_rollover(marker, newest):
                self.store.save(kind, records, marker=newest)
                logger.info(
                    "Timetable window moved from {} to {}; cache overwritten without notifying",
                    marker,
                    newest,
                )
                return CycleReport(kind, "rollover", persisted=True)

        changes = compute_diff(previous, records, kind)
        counts = count_changes(changes)
        logger.debug(
            "Diff {}: prev={}, curr={}, +{} ~{} -{}",
            kind.value,
            len(previous),
            len(records),
            counts["new"],
            counts["modified"],
            counts["removed"],
        )
        notified = self._dispatch(kind, changes)

        persisted = False
        if kind is FeedKind.TIMETABLE:
            self.store.save(kind, records, marker=newest)
            persisted = True
        elif any(isinstance(c, New) for c in changes):
            self.store.save(kind, records)
            persisted = True
        if persisted:
            logger.success("Cached {} snapshot updated ({} records)", kind.value, len(records))
        return CycleReport(kind, "ok", changes=changes, notified=notified, persisted=persisted)

    def _run_hook(self, kind: FeedKind, records: list[Record]) -> None:
        if self.on_fetched is None:
            return
        try:
            self.on_fetched(kind, records)
        except Exception:
            logger.exception("Post-fetch hook failed for {}", kind.value)

    def _dispatch(self, kind: FeedKind, changes: list[Change]) -> bool:
        if not changes:
            logger.info("No significant changes in {}", kind.value)
            return False
        if self.dry_run:
            logger.info("Dry-run: not sending {} {} change(s)", len(changes), kind.value)
            for c in changes:
                logger.debug("Change: {}", c)
            return False
        try:
            self.notifier.notify(kind, changes)
        except NotifyError as e:
            logger.error("Could not deliver {} notification: {}", kind.value, e)
            return False
        except Exception:
            logger.exception("Notifier crashed while sending {} changes", kind.value)
            return False
        logger.info("Notified about {} {} change(s)", len(changes), kind.value)
        return True
