"""Change detection and snapshot reconciliation for the WebUntis feeds."""

from __future__ import annotations

from .console import CommandConsole
from .diff import Change, Modified, New, Removed, compute_diff
from .reconcile import BaseFetcher, BaseNotifier, CycleReport, Reconciler
from .scheduler import PollScheduler
from .store import BaseSnapshotStore, FileSnapshotStore, SASnapshotStore, get_store

__all__ = [
    "Change",
    "New",
    "Modified",
    "Removed",
    "compute_diff",
    "BaseFetcher",
    "BaseNotifier",
    "CycleReport",
    "Reconciler",
    "PollScheduler",
    "CommandConsole",
    "BaseSnapshotStore",
    "FileSnapshotStore",
    "SASnapshotStore",
    "get_store",
]
