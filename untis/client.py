"""WebUntis client: JSON-RPC session plus the REST endpoints used for the feeds."""

from __future__ import annotations

import base64
import json
import time
import urllib.error as _urlerr
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any
from urllib.parse import quote, urlencode

from loguru import logger

from utils import untis_int_from_date
from utils.errors import ProviderError

from .models import FeedKind

# -------------------- API --------------------


@dataclass
class UntisSession:
    session_id: str
    person_type: int
    person_id: int
    klasse_id: int | None = None


class WebUntisAPI:
    """Thin HTTP wrapper for the WebUntis JSON-RPC and REST API using stdlib only."""

    def __init__(
        self,
        school: str,
        username: str,
        password: str,
        base_url: str,
        *,
        client_name: str = "untis-notify",
        timeout: int = 25,
    ) -> None:
        base = base_url.strip().rstrip("/")
        if not base.startswith(("http://", "https://")):
            base = "https://" + base
        self.base_url = base
        self.school = school
        self.username = username
        self.password = password
        self.client_name = client_name
        self.timeout = timeout
        self.session: UntisSession | None = None

    # Transport
    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.session is not None:
            school_b64 = base64.b64encode(self.school.encode("utf-8")).decode("ascii")
            headers["Cookie"] = (
                f"JSESSIONID={self.session.session_id}; schoolname=\"_{school_b64}\""
            )
        return headers

    def _open(self, req: urllib.request.Request) -> Any:
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                payload = resp.read()
        except _urlerr.HTTPError as e:
            txt = e.read().decode("utf-8", errors="ignore") if hasattr(e, "read") else str(e)
            raise ProviderError(f"WebUntis HTTP {e.code} {e.reason}: {txt[:200]}") from e
        except (_urlerr.URLError, TimeoutError) as e:
            raise ProviderError(f"WebUntis unreachable: {e}") from e
        try:
            return json.loads(payload)
        except ValueError as e:
            raise ProviderError("WebUntis returned a non-JSON response") from e

    def rpc(self, method: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}/WebUntis/jsonrpc.do?school={quote(self.school)}"
        body = {
            "id": str(int(time.time() * 1000)),
            "method": method,
            "params": params or {},
            "jsonrpc": "2.0",
        }
        req = urllib.request.Request(
            url, data=json.dumps(body).encode("utf-8"), headers=self._headers()
        )
        resp = self._open(req)
        if not isinstance(resp, dict):
            raise ProviderError(f"WebUntis {method}: unexpected response")
        if resp.get("error"):
            err = resp["error"]
            msg = err.get("message") if isinstance(err, dict) else err
            raise ProviderError(f"WebUntis {method} failed: {msg}")
        return resp.get("result")

    def get(self, path: str, query: dict[str, Any]) -> Any:
        self._require_session()
        url = f"{self.base_url}/WebUntis/{path.lstrip('/')}?{urlencode(query)}"
        req = urllib.request.Request(url, headers=self._headers(), method="GET")
        resp = self._open(req)
        if isinstance(resp, dict) and "data" in resp:
            return resp["data"]
        return resp

    # Session
    def login(self) -> UntisSession:
        result = self.rpc(
            "authenticate",
            {"user": self.username, "password": self.password, "client": self.client_name},
        )
        if not isinstance(result, dict) or not result.get("sessionId"):
            raise ProviderError("WebUntis login failed: no session id returned")
        self.session = UntisSession(
            session_id=str(result["sessionId"]),
            person_type=int(result.get("personType") or 0),
            person_id=int(result.get("personId") or 0),
            klasse_id=result.get("klasseId"),
        )
        logger.debug("Logged in to WebUntis as {} ({})", self.username, self.school)
        return self.session

    def logout(self) -> None:
        if self.session is None:
            return
        try:
            self.rpc("logout")
        except ProviderError as e:
            logger.warning("WebUntis logout failed: {}", e)
        finally:
            self.session = None

    def __enter__(self) -> WebUntisAPI:
        self.login()
        return self

    def __exit__(self, *exc: object) -> None:
        self.logout()

    def _require_session(self) -> UntisSession:
        if self.session is None:
            raise ProviderError("WebUntis call without an active session")
        return self.session

    # Feeds
    def get_own_timetable_for_range(self, start: date, end: date) -> list[dict[str, Any]]:
        s = self._require_session()
        field_list = ["id", "name", "longname", "externalkey"]
        result = self.rpc(
            "getTimetable",
            {
                "options": {
                    "element": {"id": s.person_id, "type": s.person_type},
                    "startDate": untis_int_from_date(start),
                    "endDate": untis_int_from_date(end),
                    "showLsText": True,
                    "showStudentgroup": True,
                    "showLsNumber": True,
                    "showSubstText": True,
                    "showInfo": True,
                    "showBooking": True,
                    "klasseFields": field_list,
                    "roomFields": field_list,
                    "subjectFields": field_list,
                    "teacherFields": field_list,
                }
            },
        )
        return list(result or [])

    def get_absent_lessons(self, start: date, end: date) -> list[dict[str, Any]]:
        s = self._require_session()
        data = self.get(
            "api/classreg/absences/students",
            {
                "startDate": untis_int_from_date(start),
                "endDate": untis_int_from_date(end),
                "studentId": s.person_id,
                "excuseStatusId": -1,
            },
        )
        return list((data or {}).get("absences") or [])

    def get_homeworks_for(self, start: date, end: date) -> list[dict[str, Any]]:
        data = self.get(
            "api/homeworks/lessons",
            {"startDate": untis_int_from_date(start), "endDate": untis_int_from_date(end)},
        )
        return merge_homework_subjects(data or {})

    def get_exams_for_range(self, start: date, end: date) -> list[dict[str, Any]]:
        data = self.get(
            "api/exams",
            {
                "startDate": untis_int_from_date(start),
                "endDate": untis_int_from_date(end),
                "klasseId": -1,
                "withGrades": "false",
            },
        )
        return list((data or {}).get("exams") or [])


def merge_homework_subjects(data: dict[str, Any]) -> list[dict[str, Any]]:
    """Attach the subject of each homework's lesson from the response's lessons table."""

    homeworks = data.get("homeworks")
    if not isinstance(homeworks, list):
        return []
    subjects = {
        lesson.get("id"): lesson.get("subject")
        for lesson in data.get("lessons") or []
        if isinstance(lesson, dict)
    }
    out: list[dict[str, Any]] = []
    for hw in homeworks:
        item = dict(hw)
        subject = subjects.get(item.get("lessonId"))
        if subject and not item.get("subject"):
            item["subject"] = subject
        out.append(item)
    return out


# -------------------- Fetcher --------------------


class UntisFetcher:
    """Fetch raw records per feed kind; owns the feed-specific query ranges.

    Every fetch opens its own client from `connect`, so feeds polled on
    different threads never share a WebUntis session.
    """

    def __init__(
        self,
        connect: Callable[[], WebUntisAPI],
        *,
        range_start: date,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.connect = connect
        self.range_start = range_start
        self._today = today

    def query_range(self, kind: FeedKind) -> tuple[date, date]:
        today = self._today()
        if kind is FeedKind.TIMETABLE:
            # Start two days back so a timezone offset never drops the current day
            return today - timedelta(days=2), today + timedelta(days=14)
        if kind is FeedKind.ABSENCE:
            return self.range_start, today
        if kind is FeedKind.HOMEWORK:
            return self.range_start, today + timedelta(days=14)
        return self.range_start, today + timedelta(days=365)

    def fetch_records(
        self, kind: FeedKind, range_start: date, range_end: date
    ) -> list[dict[str, Any]]:
        with self.connect() as api:
            if kind is FeedKind.TIMETABLE:
                records = api.get_own_timetable_for_range(range_start, range_end)
            elif kind is FeedKind.ABSENCE:
                records = api.get_absent_lessons(range_start, range_end)
            elif kind is FeedKind.HOMEWORK:
                records = api.get_homeworks_for(range_start, range_end)
            else:
                records = api.get_exams_for_range(range_start, range_end)
        logger.debug("Raw {} data ({} records): {}", kind.value, len(records), records)
        return records

    def fetch(self, kind: FeedKind) -> list[dict[str, Any]]:
        start, end = self.query_range(kind)
        logger.debug("Fetching {} for {}..{}", kind.value, start, end)
        return self.fetch_records(kind, start, end)
