"""Snapshot differencing: classify fresh records against the stored snapshot."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any, cast

from untis.models import FeedKind, Lesson, Record


@dataclass(frozen=True)
class New:
    record: Record


@dataclass(frozen=True)
class Modified:
    old: Record
    new: Record
    details: tuple[str, ...] = field(default_factory=tuple)

    @property
    def record(self) -> Record:
        return self.new


@dataclass(frozen=True)
class Removed:
    record: Record


Change = New | Modified | Removed


def _index_by_identity(records: Iterable[Record]) -> dict[tuple[Any, ...], Record]:
    """First record wins for duplicate identities."""
    out: dict[tuple[Any, ...], Record] = {}
    for r in records:
        out.setdefault(r.identity(), r)
    return out


def compute_diff(old: Sequence[Record], new: Sequence[Record], kind: FeedKind) -> list[Change]:
    """Return New/Modified changes in `new` order, then Removed in `old` order.

    Removed and Modified are only produced for the timetable; other kinds are
    identity-only and append-only.
    """

    old_by_id = _index_by_identity(old)
    changes: list[Change] = []

    for rec in new:
        prev = old_by_id.get(rec.identity())
        if prev is None:
            changes.append(New(rec))
            continue
        if kind.identity_only:
            continue
        details = cast(Lesson, rec).change_details(cast(Lesson, prev))
        if details:
            changes.append(Modified(prev, rec, tuple(details)))

    if kind is FeedKind.TIMETABLE:
        new_ids = {r.identity() for r in new}
        for rec in old:
            if rec.identity() not in new_ids:
                changes.append(Removed(rec))

    return changes


def count_changes(changes: Iterable[Change]) -> dict[str, int]:
    counts = {"new": 0, "modified": 0, "removed": 0}
    for c in changes:
        if isinstance(c, New):
            counts["new"] += 1
        elif isinstance(c, Modified):
            counts["modified"] += 1
        else:
            counts["removed"] += 1
    return counts
