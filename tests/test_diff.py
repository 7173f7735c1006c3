from __future__ import annotations

from sync.engine.diff import Modified, New, Removed, compute_diff
from untis.models import Absence, Exam, FeedKind, Homework, Lesson


def _lesson(lesson_id, *, room="A1", teacher="Smith", code=None, date=20240910):
    return Lesson(
        id=lesson_id, date=date, start_time=800, end_time=845, room=room, teacher=teacher, code=code
    )


def test_identical_snapshots_have_no_changes():
    lessons = [_lesson(1), _lesson(2, room="B2")]
    exams = [Exam(exam_date=20241001, start_time=800, end_time=930, name="Test")]
    assert compute_diff(lessons, list(lessons), FeedKind.TIMETABLE) == []
    assert compute_diff(exams, list(exams), FeedKind.EXAM) == []
    assert compute_diff([], [], FeedKind.HOMEWORK) == []


def test_room_change_yields_single_modified_detail():
    old = [_lesson(1, room="A1")]
    new = [_lesson(1, room="A2")]
    changes = compute_diff(old, new, FeedKind.TIMETABLE)
    assert len(changes) == 1
    change = changes[0]
    assert isinstance(change, Modified)
    assert list(change.details) == ["Room changed from A1 to A2"]
    assert change.old == old[0] and change.new == new[0]


def test_details_follow_room_teacher_status_order():
    old = [_lesson(1, room="A1", teacher="Smith")]
    new = [_lesson(1, room="A2", teacher="Jones", code="cancelled")]
    (change,) = compute_diff(old, new, FeedKind.TIMETABLE)
    assert list(change.details) == [
        "Room changed from A1 to A2",
        "Teacher changed from Smith to Jones",
        "Status changed from Normal to cancelled",
    ]


def test_removed_only_for_timetable():
    assert compute_diff([_lesson(1)], [], FeedKind.TIMETABLE) == [Removed(_lesson(1))]
    exam = Exam(exam_date=20241001, start_time=800, end_time=930)
    assert compute_diff([exam], [], FeedKind.EXAM) == []


def test_empty_old_snapshot_reports_everything_new():
    new = [_lesson(1), _lesson(2)]
    assert compute_diff([], new, FeedKind.TIMETABLE) == [New(new[0]), New(new[1])]


def test_order_is_new_and_modified_then_removed():
    old = [_lesson(5), _lesson(1, room="A1"), _lesson(6)]
    new = [_lesson(2), _lesson(1, room="C3"), _lesson(3)]
    changes = compute_diff(old, new, FeedKind.TIMETABLE)
    assert [type(c).__name__ for c in changes] == ["New", "Modified", "New", "Removed", "Removed"]
    assert [c.record.id for c in changes] == [2, 1, 3, 5, 6]


def test_identity_only_kinds_ignore_field_changes():
    old = [Homework(id=7, date=20240901, due_date=20240910, text="Read chapter 1")]
    new = [Homework(id=7, date=20240901, due_date=20240912, text="Read chapter 1 and 2")]
    assert compute_diff(old, new, FeedKind.HOMEWORK) == []

    a = Absence(student_name="Jane", date="2024-09-10", start_time=800, end_time=845)
    b = Absence(
        student_name="Jane", date="2024-09-10", start_time=800, end_time=845, is_excused=True
    )
    assert compute_diff([a], [b], FeedKind.ABSENCE) == []


def test_exam_identity_is_date_and_times():
    old = [Exam(exam_date=20241001, start_time=800, end_time=930, name="Old name")]
    moved = Exam(exam_date=20241002, start_time=800, end_time=930, name="Old name")
    assert compute_diff(old, [moved], FeedKind.EXAM) == [New(moved)]


def test_modified_carries_both_lessons_in_order():
    old = [_lesson(1, code="cancelled"), _lesson(2)]
    new = [_lesson(2), _lesson(1)]
    (change,) = compute_diff(old, new, FeedKind.TIMETABLE)
    assert change == Modified(old[0], new[1], ("Status changed from cancelled to Normal",))
