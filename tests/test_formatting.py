from __future__ import annotations

from sync.discord import DiscordNotifier, LogNotifier, build_notifier
from sync.discord.formatting import (
    format_changes,
    format_exams,
    format_timetable_change,
    summarize_changes,
    truncate_message,
)
from sync.engine.diff import Modified, New, Removed
from untis.models import Absence, Exam, FeedKind, Homework, Lesson


def _lesson(**kw):
    base = dict(
        id=1,
        date=20240910,
        start_time=800,
        end_time=845,
        subject="Math",
        room="A1",
        room_long="Room A1",
        teacher="Smith",
        teacher_long="Mr. Smith",
    )
    base.update(kw)
    return Lesson(**base)


def test_truncate_keeps_short_messages():
    assert truncate_message("hello") == "hello"
    assert truncate_message("x" * 2000) == "x" * 2000


def test_truncate_long_message_appends_marker():
    out = truncate_message("x" * 2500)
    assert out.endswith("**AND MORE**")
    assert len(out) == 1900 + len("**AND MORE**")


def test_new_lesson_line():
    text = format_timetable_change(New(_lesson()), user_id="42")
    assert text.startswith("🆕 New lesson (Math) added on 10.09.2024 8:00 - 8:45")
    assert "room A1 (Room A1) with Mr. Smith" in text
    assert text.endswith("<@42>")


def test_modified_lesson_lists_details():
    new = _lesson(room="B2", room_long="Room B2")
    change = Modified(_lesson(), new, ("Room changed from A1 to B2",))
    text = format_timetable_change(change)
    assert text.startswith("🔄 Lesson updated on 10.09.2024 8:00 - 8:45")
    assert "**Old lesson:** Math in room A1" in text
    assert "**New lesson:** Math in room B2" in text
    assert "**Changes:** Room changed from A1 to B2" in text
    assert "<@" not in text


def test_removed_lesson_line():
    text = format_timetable_change(Removed(_lesson()))
    assert text.startswith("❌ Lesson (Math) removed on 10.09.2024")


def test_identity_only_kinds_report_new_records_only():
    exam = Exam(exam_date=20241001, start_time=800, end_time=930, name="Algebra", rooms=("A1",))
    text = format_changes(FeedKind.EXAM, [New(exam)], user_id="7")
    assert text.startswith("📚 <@7>, you have new **exams** coming up:")
    assert "**Date:** 01.10.2024" in text
    assert "**Room(s):** A1" in text
    assert format_changes(FeedKind.EXAM, []) == ""


def test_header_without_user_is_capitalised():
    hw = Homework(id=1, date=20240901, due_date=20240905, subject="Bio", text="Read")
    text = format_changes(FeedKind.HOMEWORK, [New(hw)])
    assert text.startswith("📃 You have new **homework** assignments:")
    assert "**Subject: **Bio - Due Date: 05.09.2024" in text


def test_absence_message():
    a = Absence(student_name="Jane", date="2024-09-10", start_time=800, end_time=845)
    text = format_changes(FeedKind.ABSENCE, [New(a)], user_id="1")
    assert "**Jane **- No reason provided on 2024-09-10" in text
    assert "**Status: **Unexcused" in text
    assert "**Start Time: **8:00" in text


def test_large_batches_are_truncated():
    exams = [Exam(exam_date=20241001, start_time=800 + i, end_time=900) for i in range(60)]
    text = format_exams(exams)
    assert len(text) > 2000
    out = format_changes(FeedKind.EXAM, [New(e) for e in exams])
    assert len(out) <= 2000 and out.endswith("**AND MORE**")


def test_summarize_changes():
    changes = [New(_lesson()), New(_lesson(id=2)), Removed(_lesson(id=3))]
    assert summarize_changes(changes) == "+2, ✏️ 0, −1"


def test_discord_notifier_posts_one_message(monkeypatch):
    sent = []
    n = DiscordNotifier("https://discord.invalid/api/webhooks/1/x", user_id="9")
    monkeypatch.setattr(n.webhook, "execute", lambda content: sent.append(content) or 204)

    n.notify(FeedKind.TIMETABLE, [New(_lesson()), Removed(_lesson(id=2))])
    assert len(sent) == 1
    assert sent[0].count("<@9>") == 2


def test_build_notifier_without_webhook_logs_only():
    assert isinstance(build_notifier(None), LogNotifier)
    assert isinstance(build_notifier("https://x.invalid/hook"), DiscordNotifier)
