"""Snapshot storage: last-seen record set per feed kind plus the timetable marker.

If DATABASE_URL is provided, uses SQLAlchemy (PostgreSQL via pg8000, or any
other SQLAlchemy URL). Otherwise one JSON document per feed kind is kept in the
state directory. Every save is a full replace; the timetable snapshot and its
last-cached-date marker are written together.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    MetaData,
    String,
    Table,
    create_engine,
    delete,
    func,
    insert,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from untis.models import FeedKind, Record, record_from_dict, record_to_dict
from utils.errors import StoreError

MARKER_NAME = "last_cached_date"

# Sentinel: leave the stored marker as it is
KEEP_MARKER: Any = object()


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _decode_items(kind: FeedKind, items: Any) -> list[Record]:
    if not isinstance(items, list):
        raise StoreError(f"Stored {kind.value} snapshot is not a list")
    try:
        return [record_from_dict(kind, it) for it in items]
    except (TypeError, AttributeError) as e:
        raise StoreError(f"Stored {kind.value} snapshot has malformed records: {e}") from e


class BaseSnapshotStore:
    def load(self, kind: FeedKind) -> list[Record]:  # pragma: no cover - interface
        raise NotImplementedError

    def save(
        self, kind: FeedKind, records: Sequence[Record], *, marker: Any = KEEP_MARKER
    ) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    def load_marker(self) -> int | None:  # pragma: no cover - interface
        raise NotImplementedError

    def save_marker(self, value: int | None) -> None:  # pragma: no cover - interface
        raise NotImplementedError


# -------------------- File backend --------------------


def read_json(path: str) -> Any:
    """Return parsed JSON or None if the file does not exist."""
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        raise StoreError(f"Could not read '{path}': {e}") from e


def write_json(path: str, obj: Any) -> None:
    d = os.path.dirname(path)
    try:
        if d and not os.path.isdir(d):
            os.makedirs(d, exist_ok=True)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(obj, f, ensure_ascii=False, indent=2)
        os.replace(tmp, path)
    except OSError as e:
        raise StoreError(f"Could not write '{path}': {e}") from e


class FileSnapshotStore(BaseSnapshotStore):
    def __init__(self, state_dir: str):
        self.state_dir = state_dir

    def path_for(self, kind: FeedKind) -> str:
        return os.path.join(self.state_dir, f"{kind.value}.json")

    def _read_doc(self, kind: FeedKind) -> dict[str, Any] | None:
        obj = read_json(self.path_for(kind))
        if obj is None:
            return None
        if isinstance(obj, list):
            # Bare list of items without metadata
            return {"items": obj}
        if not isinstance(obj, dict):
            raise StoreError(f"Unexpected content in {self.path_for(kind)}")
        return obj

    def load(self, kind: FeedKind) -> list[Record]:
        doc = self._read_doc(kind)
        if not doc:
            return []
        return _decode_items(kind, doc.get("items", []))

    def save(
        self, kind: FeedKind, records: Sequence[Record], *, marker: Any = KEEP_MARKER
    ) -> None:
        doc: dict[str, Any] = {
            "items": [record_to_dict(r) for r in records],
            "generated_at": _utc_now_iso(),
        }
        if kind is FeedKind.TIMETABLE:
            doc[MARKER_NAME] = self.load_marker() if marker is KEEP_MARKER else marker
        write_json(self.path_for(kind), doc)

    def load_marker(self) -> int | None:
        doc = self._read_doc(FeedKind.TIMETABLE)
        if not doc or doc.get(MARKER_NAME) is None:
            return None
        try:
            return int(doc[MARKER_NAME])
        except (TypeError, ValueError) as e:
            raise StoreError(f"Invalid {MARKER_NAME}: {doc[MARKER_NAME]!r}") from e

    def save_marker(self, value: int | None) -> None:
        doc = self._read_doc(FeedKind.TIMETABLE) or {"items": []}
        doc[MARKER_NAME] = value
        doc["generated_at"] = _utc_now_iso()
        write_json(self.path_for(FeedKind.TIMETABLE), doc)


# -------------------- SQLAlchemy backend --------------------


def database_url_with_driver(url: str) -> str:
    """Pin bare PostgreSQL URLs (`postgres://`, `postgresql://`) to the pg8000 driver."""
    scheme, sep, rest = url.partition("://")
    if sep and scheme in ("postgres", "postgresql"):
        return f"postgresql+pg8000://{rest}"
    return url


class SASnapshotStore(BaseSnapshotStore):
    """SQLAlchemy-based store (PostgreSQL in production, SQLite works too)."""

    def __init__(self, database_url: str):
        self.database_url = database_url_with_driver(database_url)
        try:
            self.engine: Engine = create_engine(
                self.database_url, future=True, pool_pre_ping=True
            )
        except (SQLAlchemyError, ImportError) as e:
            raise StoreError(f"Could not open database: {e}") from e
        self.meta = MetaData()
        self.snapshots = Table(
            "feed_snapshots",
            self.meta,
            Column("kind", String, primary_key=True),
            Column("items", JSON, nullable=False),
            Column(
                "generated_at", DateTime(timezone=True), server_default=func.now(), nullable=False
            ),
        )
        self.markers = Table(
            "feed_markers",
            self.meta,
            Column("name", String, primary_key=True),
            Column("value", BigInteger, nullable=True),
        )
        self._ensure_schema()

    def _ensure_schema(self) -> None:
        try:
            self.meta.create_all(self.engine, tables=[self.snapshots, self.markers])
        except SQLAlchemyError as e:
            raise StoreError(f"Could not create snapshot tables: {e}") from e

    def load(self, kind: FeedKind) -> list[Record]:
        try:
            with self.engine.connect() as conn:
                stmt = select(self.snapshots.c["items"]).where(self.snapshots.c.kind == kind.value)
                row = conn.execute(stmt).fetchone()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read {kind.value} snapshot: {e}") from e
        if row is None:
            return []
        return _decode_items(kind, row[0])

    def save(
        self, kind: FeedKind, records: Sequence[Record], *, marker: Any = KEEP_MARKER
    ) -> None:
        items = [record_to_dict(r) for r in records]
        try:
            with self.engine.begin() as conn:
                conn.execute(delete(self.snapshots).where(self.snapshots.c.kind == kind.value))
                conn.execute(
                    insert(self.snapshots).values(
                        kind=kind.value, items=items, generated_at=datetime.now(UTC)
                    )
                )
                if kind is FeedKind.TIMETABLE and marker is not KEEP_MARKER:
                    self._write_marker(conn, marker)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not save {kind.value} snapshot: {e}") from e

    def _write_marker(self, conn, value: int | None) -> None:
        conn.execute(delete(self.markers).where(self.markers.c.name == MARKER_NAME))
        conn.execute(insert(self.markers).values(name=MARKER_NAME, value=value))

    def load_marker(self) -> int | None:
        try:
            with self.engine.connect() as conn:
                stmt = select(self.markers.c.value).where(self.markers.c.name == MARKER_NAME)
                row = conn.execute(stmt).fetchone()
        except SQLAlchemyError as e:
            raise StoreError(f"Could not read {MARKER_NAME}: {e}") from e
        return int(row[0]) if row and row[0] is not None else None

    def save_marker(self, value: int | None) -> None:
        try:
            with self.engine.begin() as conn:
                self._write_marker(conn, value)
        except SQLAlchemyError as e:
            raise StoreError(f"Could not save {MARKER_NAME}: {e}") from e


def get_store(database_url: str | None, state_dir: str) -> BaseSnapshotStore:
    if database_url:
        try:
            return SASnapshotStore(database_url)
        except StoreError:
            logger.exception("Database snapshot store unavailable; falling back to files")
    return FileSnapshotStore(state_dir)
