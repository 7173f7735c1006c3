import os
import sys

import pytest


def _project_root() -> str:
    here = os.path.dirname(__file__)
    return os.path.abspath(os.path.join(here, os.pardir))


# Ensure project root is importable (so `import sync` works in tests)
root = _project_root()
if root not in sys.path:
    sys.path.insert(0, root)

from sync.engine.reconcile import BaseFetcher, BaseNotifier  # noqa: E402
from sync.engine.store import FileSnapshotStore  # noqa: E402


def raw_lesson(lesson_id, *, date=20240910, room="A1", teacher="Smith", code=None, start=800):
    raw = {
        "id": lesson_id,
        "date": date,
        "startTime": start,
        "endTime": start + 45,
        "su": [{"id": 1, "name": "M", "longname": "Math"}],
        "ro": [{"id": 2, "name": room, "longname": f"Room {room}"}],
        "te": [{"id": 3, "name": teacher, "longname": f"Mr. {teacher}"}],
    }
    if code:
        raw["code"] = code
    return raw


class FakeFetcher(BaseFetcher):
    def __init__(self, responses=None):
        self.responses = dict(responses or {})
        self.calls = []

    def fetch(self, kind):
        self.calls.append(kind)
        result = self.responses.get(kind, [])
        if isinstance(result, Exception):
            raise result
        return list(result)


class RecordingNotifier(BaseNotifier):
    def __init__(self, error=None):
        self.calls = []
        self.error = error

    def notify(self, kind, changes):
        self.calls.append((kind, list(changes)))
        if self.error is not None:
            raise self.error


class CountingStore(FileSnapshotStore):
    def __init__(self, state_dir):
        super().__init__(state_dir)
        self.saves = 0

    def save(self, kind, records, **kwargs):
        self.saves += 1
        super().save(kind, records, **kwargs)


@pytest.fixture
def store(tmp_path):
    return CountingStore(str(tmp_path / "state"))


@pytest.fixture
def notifier():
    return RecordingNotifier()
