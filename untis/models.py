"""Feed kinds, raw WebUntis payload shapes and canonical records."""

from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from enum import Enum
from typing import Any, NotRequired, TypedDict

UNKNOWN_SUBJECT = "Unknown Subject"
UNKNOWN_ROOM = "Unknown Room"
UNKNOWN_TEACHER = "Unknown Teacher"
UNKNOWN_STUDENT = "Unknown Student"
UNKNOWN_USER = "Unknown User"


class FeedKind(str, Enum):
    TIMETABLE = "timetable"
    ABSENCE = "absence"
    HOMEWORK = "homework"
    EXAM = "exam"

    @property
    def identity_only(self) -> bool:
        """Records of this kind are never compared beyond their identity key."""
        return self is not FeedKind.TIMETABLE

    @property
    def command(self) -> str:
        return COMMAND_VERBS_BY_KIND[self]


COMMAND_VERBS_BY_KIND: dict[FeedKind, str] = {
    FeedKind.TIMETABLE: "timetable",
    FeedKind.ABSENCE: "absences",
    FeedKind.HOMEWORK: "homework",
    FeedKind.EXAM: "exams",
}
KIND_BY_COMMAND: dict[str, FeedKind] = {v: k for k, v in COMMAND_VERBS_BY_KIND.items()}


# ---------- Raw provider payloads ----------


class RawElement(TypedDict, total=False):
    id: int
    name: str
    longname: str


class RawLesson(TypedDict):
    id: int
    date: int
    startTime: int
    endTime: int
    su: NotRequired[list[RawElement]]
    ro: NotRequired[list[RawElement]]
    te: NotRequired[list[RawElement]]
    code: NotRequired[str]


class RawAbsence(TypedDict, total=False):
    studentName: str
    startDate: int
    endDate: int
    startTime: int
    endTime: int
    reason: str
    createdUser: str
    updatedUser: str
    excuseStatus: str
    isExcused: bool
    createDate: int
    lastUpdate: int


class RawHomework(TypedDict):
    id: int
    lessonId: NotRequired[int]
    date: int
    dueDate: int
    text: NotRequired[str]
    remark: NotRequired[str]
    completed: NotRequired[bool]
    # Resolved from the response's lessons table by the client
    subject: NotRequired[str]


class RawStudent(TypedDict, total=False):
    id: int
    displayName: str
    klasse: str


class RawExam(TypedDict):
    examDate: int | str
    startTime: int
    endTime: int
    id: NotRequired[int]
    examType: NotRequired[str]
    name: NotRequired[str]
    subject: NotRequired[str]
    rooms: NotRequired[list[str]]
    teachers: NotRequired[list[str]]
    assignedStudents: NotRequired[list[RawStudent]]
    text: NotRequired[str]


# ---------- Canonical records ----------


@dataclass(frozen=True)
class Lesson:
    id: int
    date: int
    start_time: int
    end_time: int
    subject: str = UNKNOWN_SUBJECT
    room: str = UNKNOWN_ROOM
    room_long: str = UNKNOWN_ROOM
    teacher: str = UNKNOWN_TEACHER
    teacher_long: str = UNKNOWN_TEACHER
    code: str | None = None

    def identity(self) -> tuple[Any, ...]:
        return (self.id,)

    def change_details(self, old: Lesson) -> list[str]:
        """Human-readable differences from `old`, ordered room, teacher, status."""
        details: list[str] = []
        if old.room != self.room:
            details.append(f"Room changed from {old.room} to {self.room}")
        if old.teacher != self.teacher:
            details.append(f"Teacher changed from {old.teacher} to {self.teacher}")
        if old.code != self.code:
            details.append(
                f"Status changed from {old.code or 'Normal'} to {self.code or 'Normal'}"
            )
        return details


@dataclass(frozen=True)
class Absence:
    student_name: str
    date: str  # YYYY-MM-DD
    start_time: int
    end_time: int
    reason: str = "No reason provided"
    excuse_status: str = "No status"
    is_excused: bool = False
    created_user: str = UNKNOWN_USER
    updated_user: str = UNKNOWN_USER
    created_time: str = ""
    last_edit_time: str = ""

    def identity(self) -> tuple[Any, ...]:
        return (self.student_name, self.date, self.start_time, self.end_time)


@dataclass(frozen=True)
class Homework:
    id: int
    date: int
    due_date: int
    lesson_id: int | None = None
    subject: str = UNKNOWN_SUBJECT
    text: str = ""
    remark: str = ""
    completed: bool = False

    def identity(self) -> tuple[Any, ...]:
        return (self.id,)


@dataclass(frozen=True)
class Exam:
    exam_date: int
    start_time: int
    end_time: int
    id: int | None = None
    exam_type: str = ""
    name: str = ""
    subject: str = UNKNOWN_SUBJECT
    rooms: tuple[str, ...] = ()
    teachers: tuple[str, ...] = ()
    students: tuple[str, ...] = ()
    text: str = ""

    def identity(self) -> tuple[Any, ...]:
        return (self.exam_date, self.start_time, self.end_time)


Record = Lesson | Absence | Homework | Exam

RECORD_TYPES: dict[FeedKind, type] = {
    FeedKind.TIMETABLE: Lesson,
    FeedKind.ABSENCE: Absence,
    FeedKind.HOMEWORK: Homework,
    FeedKind.EXAM: Exam,
}


def record_to_dict(record: Record) -> dict[str, Any]:
    out = asdict(record)
    for k, v in out.items():
        if isinstance(v, tuple):
            out[k] = list(v)
    return out


def record_from_dict(kind: FeedKind, data: dict[str, Any]) -> Record:
    """Rebuild a record from its stored JSON form; unknown keys are ignored."""
    cls = RECORD_TYPES[kind]
    known = {f.name for f in fields(cls)}
    kwargs = {}
    for k, v in data.items():
        if k not in known:
            continue
        kwargs[k] = tuple(v) if isinstance(v, list) else v
    return cls(**kwargs)
