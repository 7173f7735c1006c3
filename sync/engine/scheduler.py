"""Polling: one daemon thread per enabled feed kind, plus on-demand triggers."""

from __future__ import annotations

import threading
from collections.abc import Iterable

from loguru import logger

from untis.models import FeedKind

from .reconcile import Reconciler


class PollScheduler:
    def __init__(
        self, reconciler: Reconciler, kinds: Iterable[FeedKind], *, interval_seconds: int
    ) -> None:
        self.reconciler = reconciler
        self.kinds = list(dict.fromkeys(kinds))
        self.interval_seconds = max(int(interval_seconds), 1)
        self._stop = threading.Event()
        self._threads: list[threading.Thread] = []

    def is_enabled(self, kind: FeedKind) -> bool:
        return kind in self.kinds

    def _loop(self, kind: FeedKind) -> None:
        # First cycle runs immediately, then once per interval
        while not self._stop.is_set():
            self.reconciler.reconcile(kind)
            if self._stop.wait(self.interval_seconds):
                break
        logger.debug("Polling for {} stopped", kind.value)

    def start(self) -> list[threading.Thread]:
        for kind in self.kinds:
            t = threading.Thread(
                target=self._loop, args=(kind,), name=f"poll-{kind.value}", daemon=True
            )
            t.start()
            self._threads.append(t)
        logger.info(
            "Polling {} every {} s",
            ", ".join(k.value for k in self.kinds) or "nothing",
            self.interval_seconds,
        )
        return list(self._threads)

    def trigger(self, kind: FeedKind) -> threading.Thread:
        """Run one cycle for `kind` right away without touching its timer."""
        t = threading.Thread(
            target=self.reconciler.reconcile, args=(kind,), name=f"manual-{kind.value}", daemon=True
        )
        t.start()
        return t

    def stop(self) -> None:
        self._stop.set()

    def join(self, timeout: float | None = None) -> None:
        for t in self._threads:
            t.join(timeout)
