from __future__ import annotations

import threading
import urllib.error
import urllib.request

import pytest
from icalendar import Calendar

from sync.serve.timetable_server import (
    ICS_ROUTE,
    make_event_uid,
    make_ical_hook,
    make_server,
    write_timetable_ics,
)
from untis.models import FeedKind, Lesson


def _lessons():
    return [
        Lesson(id=1, date=20240910, start_time=800, end_time=845, subject="Math", room="A1"),
        Lesson(id=2, date=20240910, start_time=950, end_time=1035, subject="Bio", code="cancelled"),
    ]


def test_write_timetable_ics_builds_one_event_per_lesson(tmp_path):
    path = tmp_path / "out" / "timetable.ics"
    count, changed = write_timetable_ics(_lessons(), path=str(path), timezone="Europe/Berlin")
    assert (count, changed) == (2, True)

    cal = Calendar.from_ical(path.read_bytes())
    events = list(cal.walk("VEVENT"))
    assert [str(e["summary"]) for e in events] == ["Math", "Bio"]
    assert str(events[0]["uid"]) == make_event_uid(_lessons()[0])
    start = events[0].decoded("dtstart")
    assert (start.hour, start.minute) == (8, 0)
    assert str(events[1]["status"]) == "CANCELLED"


def test_rewrite_with_same_lessons_is_unchanged(tmp_path):
    path = str(tmp_path / "timetable.ics")
    write_timetable_ics(_lessons(), path=path, timezone="Europe/Berlin")
    _, changed = write_timetable_ics(_lessons(), path=path, timezone="Europe/Berlin")
    assert changed is False
    _, changed = write_timetable_ics(_lessons()[:1], path=path, timezone="Europe/Berlin")
    assert changed is True


def test_hook_only_reacts_to_timetable(tmp_path):
    path = tmp_path / "timetable.ics"
    hook = make_ical_hook(path=str(path), timezone="Europe/Berlin")
    hook(FeedKind.EXAM, [])
    assert not path.exists()
    hook(FeedKind.TIMETABLE, _lessons())
    assert path.exists()


@pytest.fixture
def server(tmp_path):
    ics = tmp_path / "timetable.ics"
    httpd = make_server(host="127.0.0.1", port=0, ics_path=str(ics))
    t = threading.Thread(target=httpd.serve_forever, kwargs={"poll_interval": 0.1}, daemon=True)
    t.start()
    base = f"http://127.0.0.1:{httpd.server_address[1]}"
    yield base, ics
    httpd.shutdown()
    httpd.server_close()


def test_server_serves_calendar_with_etag(server):
    base, ics = server
    with pytest.raises(urllib.error.HTTPError) as ei:
        urllib.request.urlopen(base + ICS_ROUTE, timeout=5)
    assert ei.value.code == 404

    write_timetable_ics(_lessons(), path=str(ics), timezone="Europe/Berlin")
    with urllib.request.urlopen(base + ICS_ROUTE, timeout=5) as resp:
        assert resp.status == 200
        assert resp.headers["Content-Type"].startswith("text/calendar")
        etag = resp.headers["ETag"]
        assert resp.read() == ics.read_bytes()

    req = urllib.request.Request(base + ICS_ROUTE, headers={"If-None-Match": etag})
    with pytest.raises(urllib.error.HTTPError) as ei:
        urllib.request.urlopen(req, timeout=5)
    assert ei.value.code == 304


def test_server_unknown_path_is_404(server):
    base, _ = server
    with pytest.raises(urllib.error.HTTPError) as ei:
        urllib.request.urlopen(base + "/other", timeout=5)
    assert ei.value.code == 404
