"""iCal export of the fetched timetable and a lightweight HTTP server for it.

Endpoints:
- GET /timetable.ics  → returns text/calendar
- HEAD /timetable.ics → same headers, no body

No authentication is implemented; do not expose it publicly.
"""

from __future__ import annotations

import hashlib
import os
import threading
from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import cast
from zoneinfo import ZoneInfo

from icalendar import Calendar, Event
from loguru import logger

from untis.models import FeedKind, Lesson, Record
from utils import date_from_untis_string

ICS_ROUTE = "/timetable.ics"
_TEXT = {"Content-Type": "text/plain; charset=utf-8"}


def _md5_hex(data: bytes) -> str:
    return hashlib.md5(data).hexdigest()


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def make_event_uid(lesson: Lesson) -> str:
    """Deterministic UID for stability across runs."""
    key = f"{lesson.id}|{lesson.date}|{lesson.start_time}|{lesson.end_time}"
    return "untis_" + _md5_hex(key.encode("utf-8"))


def _lesson_datetimes(lesson: Lesson, tz: ZoneInfo) -> tuple[datetime, datetime]:
    day = date_from_untis_string(str(lesson.date))
    start = datetime(
        day.year, day.month, day.day, lesson.start_time // 100, lesson.start_time % 100, tzinfo=tz
    )
    end = datetime(
        day.year, day.month, day.day, lesson.end_time // 100, lesson.end_time % 100, tzinfo=tz
    )
    return start, end


def build_timetable_ics(lessons: Sequence[Lesson], *, timezone: str) -> bytes:
    """Build a VCALENDAR containing one VEVENT per lesson."""

    tz = ZoneInfo(timezone)
    cal = Calendar()
    cal.add("prodid", "-//untis-notify//School Timetable//EN")
    cal.add("version", "2.0")
    cal.add("x-wr-calname", "School Timetable")

    stamp = datetime.now(UTC)
    for lesson in lessons:
        ev = Event()
        ev.add("uid", make_event_uid(lesson))
        ev.add("summary", lesson.subject)
        ev.add("location", f"{lesson.room} ({lesson.room_long})")
        ev.add("description", lesson.teacher_long)
        start, end = _lesson_datetimes(lesson, tz)
        ev.add("dtstart", start)
        ev.add("dtend", end)
        ev.add("dtstamp", stamp)
        ev.add("status", "CANCELLED" if lesson.code == "cancelled" else "CONFIRMED")
        cal.add_component(ev)
    return cal.to_ical()


def write_timetable_ics(
    lessons: Sequence[Lesson], *, path: str, timezone: str
) -> tuple[int, bool]:
    """Write the calendar file atomically. Returns (event_count, changed)."""

    d = os.path.dirname(path)
    if d:
        os.makedirs(d, exist_ok=True)
    data = build_timetable_ics(lessons, timezone=timezone)
    try:
        prev = _read_file(path)
    except FileNotFoundError:
        prev = b""
    # DTSTAMP differs on every build; compare without it
    changed = _strip_dtstamp(prev) != _strip_dtstamp(data)
    tmp = path + ".tmp"
    with open(tmp, "wb") as f:
        f.write(data)
    os.replace(tmp, path)
    return len(lessons), changed


def _strip_dtstamp(data: bytes) -> bytes:
    return b"\n".join(line for line in data.splitlines() if not line.startswith(b"DTSTAMP"))


def make_ical_hook(*, path: str, timezone: str) -> Callable[[FeedKind, list[Record]], None]:
    """Post-fetch hook that refreshes the calendar file after each timetable fetch."""

    def _hook(kind: FeedKind, records: list[Record]) -> None:
        if kind is not FeedKind.TIMETABLE:
            return
        lessons = [r for r in records if isinstance(r, Lesson)]
        count, changed = write_timetable_ics(lessons, path=path, timezone=timezone)
        logger.info("[ICAL] Wrote {} ({} events, changed: {})", path, count, changed)

    return _hook


class _TimetableHandler(BaseHTTPRequestHandler):
    server_version = "untis-notify/1.0"

    # set by factory
    ics_path: str

    def log_message(self, format: str, *args) -> None:  # noqa: A003
        logger.debug("HTTP: " + format, *args)

    def _send(
        self, code: int, *, headers: dict[str, str] | None = None, body: bytes | None = None
    ) -> None:
        self.send_response(code)
        for k, v in (headers or {}).items():
            self.send_header(k, v)
        self.send_header("Content-Length", str(len(body)) if body is not None else "0")
        self.end_headers()
        if body is not None:
            self.wfile.write(body)

    def _serve(self, *, with_body: bool) -> None:
        path = (self.path or "/").split("?", 1)[0]
        if path.rstrip("/") != ICS_ROUTE:
            self._send(404, headers=_TEXT, body=b"not found")
            return
        try:
            data = _read_file(self.ics_path)
        except FileNotFoundError:
            self._send(404, headers=_TEXT, body=b"iCal file not found")
            return
        except OSError:
            self._send(500, headers=_TEXT, body=b"read error")
            return
        etag = '"' + _md5_hex(data) + '"'
        inm = (self.headers.get("If-None-Match") or "").strip()
        if inm and inm == etag:
            self._send(304, headers={"ETag": etag})
            return
        headers = {"Content-Type": "text/calendar; charset=utf-8", "ETag": etag}
        if with_body:
            self._send(200, headers=headers, body=data)
            logger.debug("Served timetable.ics ({} bytes)", len(data))
        else:
            self.send_response(200)
            for k, v in headers.items():
                self.send_header(k, v)
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()

    def do_GET(self) -> None:  # noqa: N802
        self._serve(with_body=True)

    def do_HEAD(self) -> None:  # noqa: N802
        self._serve(with_body=False)


def make_server(*, host: str, port: int, ics_path: str) -> ThreadingHTTPServer:
    class Handler(_TimetableHandler):  # type: ignore
        pass

    Handler.ics_path = ics_path
    return ThreadingHTTPServer((host, port), cast(type[BaseHTTPRequestHandler], Handler))


def start_ical_server_background(*, host: str, port: int, ics_path: str) -> threading.Thread:
    """Start HTTP server in a daemon thread and return the thread."""

    httpd = make_server(host=host, port=port, ics_path=ics_path)

    def _run():
        logger.info("iCal server: http://{}:{}{} (file: {})", host, port, ICS_ROUTE, ics_path)
        try:
            httpd.serve_forever(poll_interval=0.5)
        except Exception as e:
            logger.exception("iCal HTTP server crashed: {}", e)
        finally:
            httpd.server_close()

    t = threading.Thread(target=_run, name="ical-server", daemon=True)
    t.start()
    return t
