"""WebUntis access: API client, feed kinds, records and normalization."""

from __future__ import annotations

from .client import UntisFetcher, WebUntisAPI, merge_homework_subjects
from .models import (
    KIND_BY_COMMAND,
    Absence,
    Exam,
    FeedKind,
    Homework,
    Lesson,
    Record,
    record_from_dict,
    record_to_dict,
)
from .normalize import normalize, normalize_records

__all__ = [
    "WebUntisAPI",
    "UntisFetcher",
    "merge_homework_subjects",
    "FeedKind",
    "KIND_BY_COMMAND",
    "Lesson",
    "Absence",
    "Homework",
    "Exam",
    "Record",
    "record_to_dict",
    "record_from_dict",
    "normalize",
    "normalize_records",
]
