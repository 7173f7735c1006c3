"""Discord message bodies for feed changes."""

from __future__ import annotations

from collections.abc import Sequence
from typing import cast

from sync.engine.diff import Change, Modified, New, Removed
from untis.models import Absence, Exam, FeedKind, Homework, Lesson
from utils import date_from_untis_int, format_date_untis, format_time_untis

DISCORD_MESSAGE_LIMIT = 2000
TRUNCATION_SUFFIX = "**AND MORE**"


def mention(user_id: str | None) -> str:
    return f"<@{user_id}>" if user_id else ""


def _header(icon: str, text: str, user_id: str | None) -> str:
    tag = mention(user_id)
    if tag:
        return f"{icon} {tag}, {text}\n"
    return f"{icon} {text[:1].upper()}{text[1:]}\n"


def truncate_message(
    text: str, *, limit: int = DISCORD_MESSAGE_LIMIT, suffix: str = TRUNCATION_SUFFIX
) -> str:
    """Cut `text` to fit `limit`, leaving 100 characters of headroom for the suffix."""
    if len(text) <= limit:
        return text
    excess = len(text) - limit + 100
    if excess < len(text):
        return text[:-excess] + suffix
    return suffix


def _time_span(start: int, end: int) -> str:
    return f"{format_time_untis(start)} - {format_time_untis(end)}"


def _describe_lesson(lesson: Lesson) -> str:
    return (
        f"{lesson.subject} in room {lesson.room} ({lesson.room_long}) "
        f"with {lesson.teacher_long}"
    )


def format_timetable_change(change: Change, *, user_id: str | None = None) -> str:
    lesson = cast(Lesson, change.record)
    when = f"{format_date_untis(lesson.date)} {_time_span(lesson.start_time, lesson.end_time)}"
    tag = mention(user_id)
    if isinstance(change, New):
        line = f"🆕 New lesson ({lesson.subject}) added on {when}: {_describe_lesson(lesson)}."
    elif isinstance(change, Modified):
        old = cast(Lesson, change.old)
        line = (
            f"🔄 Lesson updated on {when}:\n"
            f"**Old lesson:** {_describe_lesson(old)}.\n"
            f"**New lesson:** {_describe_lesson(lesson)}.\n"
            f"**Changes:** {', '.join(change.details)}"
        )
    else:
        line = (
            f"❌ Lesson ({lesson.subject}) removed on {when}: "
            f"{lesson.subject} in room {lesson.room} ({lesson.room_long})."
        )
    return f"{line}\n{tag}" if tag else line


def format_absences(absences: Sequence[Absence], *, user_id: str | None = None) -> str:
    blocks = [
        f"**{a.student_name} **- {a.reason} on {a.date}\n"
        f"**Created by: **{a.created_user}\n"
        f"**Status: **{'Excused' if a.is_excused else 'Unexcused'}\n"
        f"**Created Time: **{a.created_time}\n"
        f"**Last Edit Time: **{a.last_edit_time}\n"
        f"**Start Time: **{format_time_untis(a.start_time)}\n"
        f"**End Time: **{format_time_untis(a.end_time)}"
        for a in absences
    ]
    return _header("⚠️", "you have new absences:", user_id) + "\n\n".join(blocks)


def format_homework(items: Sequence[Homework], *, user_id: str | None = None) -> str:
    blocks = []
    for h in items:
        due = date_from_untis_int(h.due_date).strftime("%d.%m.%Y")
        created = date_from_untis_int(h.date).strftime("%d.%m.%Y")
        blocks.append(
            f"**Subject: **{h.subject} - Due Date: {due}\n"
            f"**Description: **{h.text}\n"
            f"**Remark: **{h.remark}\n"
            f"**Created Time: **{created}"
        )
    return _header("📃", "you have new **homework** assignments:", user_id) + "\n\n".join(
        blocks
    )


def format_exams(items: Sequence[Exam], *, user_id: str | None = None) -> str:
    blocks = []
    for e in items:
        on = date_from_untis_int(e.exam_date).strftime("%d.%m.%Y")
        blocks.append(
            f"**Exam ID:** {e.id if e.id is not None else '-'}\n"
            f"**Name:** {e.name}\n"
            f"**Subject:** {e.subject}\n"
            f"**Date:** {on}\n"
            f"**Start Time:** {format_time_untis(e.start_time)}\n"
            f"**End Time:** {format_time_untis(e.end_time)}\n"
            f"**Room(s):** {', '.join(e.rooms)}\n"
            f"**Teachers:** {', '.join(e.teachers)}\n"
            f"**Assigned Students:** {', '.join(e.students)}"
        )
    return _header("📚", "you have new **exams** coming up:", user_id) + "\n\n".join(blocks)


def format_changes(
    kind: FeedKind, changes: Sequence[Change], *, user_id: str | None = None
) -> str:
    """Build one message for a cycle's change list, truncated to the Discord limit."""

    if not changes:
        return ""
    if kind is FeedKind.TIMETABLE:
        text = "\n".join(format_timetable_change(c, user_id=user_id) for c in changes)
        return truncate_message(text)

    # Identity-only feeds report new records only
    records = [c.record for c in changes if isinstance(c, New)]
    if not records:
        return ""
    if kind is FeedKind.ABSENCE:
        text = format_absences(records, user_id=user_id)  # type: ignore[arg-type]
    elif kind is FeedKind.HOMEWORK:
        text = format_homework(records, user_id=user_id)  # type: ignore[arg-type]
    else:
        text = format_exams(records, user_id=user_id)  # type: ignore[arg-type]
    return truncate_message(text)


def summarize_changes(changes: Sequence[Change]) -> str:
    added = sum(isinstance(c, New) for c in changes)
    modified = sum(isinstance(c, Modified) for c in changes)
    removed = sum(isinstance(c, Removed) for c in changes)
    return f"+{added}, ✏️ {modified}, −{removed}"
