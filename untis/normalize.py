"""Convert raw WebUntis records into canonical records.

Date decoding rule per feed kind:
- timetable: lesson ``date`` is decoded by slicing its 8-digit string form;
- absence, homework: integer arithmetic on YYYYMMDD;
- exam: integer arithmetic, or slicing when the provider sends an 8-digit string.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any, cast

from utils import (
    date_from_untis_int,
    date_from_untis_string,
    format_date_iso,
    untis_int_from_date,
)
from utils.errors import PayloadError

from .models import (
    UNKNOWN_ROOM,
    UNKNOWN_STUDENT,
    UNKNOWN_SUBJECT,
    UNKNOWN_TEACHER,
    UNKNOWN_USER,
    Absence,
    Exam,
    FeedKind,
    Homework,
    Lesson,
    RawAbsence,
    RawElement,
    RawExam,
    RawHomework,
    RawLesson,
    Record,
)


def _require_int(raw: Mapping[str, Any], key: str, kind: FeedKind) -> int:
    if key not in raw or raw[key] is None:
        raise PayloadError(f"{kind.value} record without '{key}': {dict(raw)!r}")
    try:
        return int(raw[key])
    except (TypeError, ValueError) as e:
        raise PayloadError(f"{kind.value} record has non-integer '{key}': {raw[key]!r}") from e


def _text(value: Any, fallback: str) -> str:
    if value is None:
        return fallback
    s = str(value).strip()
    return s or fallback


def _first(elements: list[RawElement] | None) -> RawElement:
    if not elements:
        return {}
    return elements[0] or {}


def _checked(decode, value: Any, kind: FeedKind, key: str):
    try:
        return decode(value)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"{kind.value} record has invalid '{key}': {value!r}") from e


def normalize_lesson(raw: RawLesson) -> Lesson:
    kind = FeedKind.TIMETABLE
    lesson_id = _require_int(raw, "id", kind)
    date_raw = _require_int(raw, "date", kind)
    lesson_date = _checked(date_from_untis_string, str(date_raw), kind, "date")

    su = _first(raw.get("su"))
    ro = _first(raw.get("ro"))
    te = _first(raw.get("te"))
    room = _text(ro.get("name"), UNKNOWN_ROOM)
    teacher = _text(te.get("name"), UNKNOWN_TEACHER)
    return Lesson(
        id=lesson_id,
        date=untis_int_from_date(lesson_date),
        start_time=_require_int(raw, "startTime", kind),
        end_time=_require_int(raw, "endTime", kind),
        subject=_text(su.get("longname") or su.get("name"), UNKNOWN_SUBJECT),
        room=room,
        room_long=_text(ro.get("longname"), room),
        teacher=teacher,
        teacher_long=_text(te.get("longname"), teacher),
        code=(str(raw["code"]) if raw.get("code") else None),
    )


def normalize_absence(raw: RawAbsence) -> Absence:
    kind = FeedKind.ABSENCE
    start_date = _require_int(raw, "startDate", kind)
    absent_on = _checked(date_from_untis_int, start_date, kind, "startDate")
    return Absence(
        student_name=_text(raw.get("studentName"), UNKNOWN_STUDENT),
        date=absent_on.isoformat(),
        start_time=_require_int(raw, "startTime", kind),
        end_time=_require_int(raw, "endTime", kind),
        reason=_text(raw.get("reason"), "No reason provided"),
        excuse_status=_text(raw.get("excuseStatus"), "No status"),
        is_excused=bool(raw.get("isExcused")),
        created_user=_text(raw.get("createdUser"), UNKNOWN_USER),
        updated_user=_text(raw.get("updatedUser"), UNKNOWN_USER),
        created_time=format_date_iso(raw.get("createDate")),
        last_edit_time=format_date_iso(raw.get("lastUpdate")),
    )


def normalize_homework(raw: RawHomework) -> Homework:
    kind = FeedKind.HOMEWORK
    created = _require_int(raw, "date", kind)
    due = _require_int(raw, "dueDate", kind)
    _checked(date_from_untis_int, created, kind, "date")
    _checked(date_from_untis_int, due, kind, "dueDate")
    lesson_id = raw.get("lessonId")
    return Homework(
        id=_require_int(raw, "id", kind),
        date=created,
        due_date=due,
        lesson_id=int(lesson_id) if lesson_id is not None else None,
        subject=_text(raw.get("subject"), UNKNOWN_SUBJECT),
        text=_text(raw.get("text"), ""),
        remark=_text(raw.get("remark"), ""),
        completed=bool(raw.get("completed")),
    )


def _exam_date(value: Any) -> int:
    kind = FeedKind.EXAM
    if value is None:
        raise PayloadError("exam record without 'examDate'")
    if isinstance(value, str):
        d = _checked(date_from_untis_string, value, kind, "examDate")
    else:
        d = _checked(date_from_untis_int, value, kind, "examDate")
    return untis_int_from_date(d)


def normalize_exam(raw: RawExam) -> Exam:
    kind = FeedKind.EXAM
    students = [
        _text(s.get("displayName"), UNKNOWN_STUDENT) for s in raw.get("assignedStudents") or []
    ]
    exam_id = raw.get("id")
    return Exam(
        exam_date=_exam_date(raw.get("examDate")),
        start_time=_require_int(raw, "startTime", kind),
        end_time=_require_int(raw, "endTime", kind),
        id=int(exam_id) if exam_id is not None else None,
        exam_type=_text(raw.get("examType"), ""),
        name=_text(raw.get("name"), ""),
        subject=_text(raw.get("subject"), UNKNOWN_SUBJECT),
        rooms=tuple(_text(r, UNKNOWN_ROOM) for r in raw.get("rooms") or []),
        teachers=tuple(_text(t, UNKNOWN_TEACHER) for t in raw.get("teachers") or []),
        students=tuple(students),
        text=_text(raw.get("text"), ""),
    )


_NORMALIZERS = {
    FeedKind.TIMETABLE: normalize_lesson,
    FeedKind.ABSENCE: normalize_absence,
    FeedKind.HOMEWORK: normalize_homework,
    FeedKind.EXAM: normalize_exam,
}


def normalize(kind: FeedKind, raw: Mapping[str, Any]) -> Record:
    if not isinstance(raw, Mapping):
        raise PayloadError(f"{kind.value} record is not an object: {raw!r}")
    return _NORMALIZERS[kind](cast(Any, raw))


def normalize_records(kind: FeedKind, raws: Iterable[Mapping[str, Any]]) -> list[Record]:
    """Normalize a whole fetch; one malformed record fails the batch."""
    return [normalize(kind, r) for r in raws]
