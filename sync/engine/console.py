"""Operator console reading commands from stdin."""

from __future__ import annotations

import sys
from typing import TextIO

from loguru import logger

from untis.models import KIND_BY_COMMAND, FeedKind

from .scheduler import PollScheduler

HELP_TEXT = """Available commands:
help - Displays this help message
status - Displays the current scanning status
exit - Exits the console
exams - Checks for new exams
timetable - Caches the timetable
absences - Checks for new absences
homework - Checks for new homework"""

_STATUS_LABELS = {
    FeedKind.TIMETABLE: "Timetable scanning",
    FeedKind.EXAM: "Exam scanning",
    FeedKind.HOMEWORK: "Homework scanning",
    FeedKind.ABSENCE: "Absence scanning",
}


class CommandConsole:
    def __init__(
        self,
        scheduler: PollScheduler,
        *,
        stdin: TextIO | None = None,
        stdout: TextIO | None = None,
        prompt: str = "> ",
    ) -> None:
        self.scheduler = scheduler
        self.stdin = stdin or sys.stdin
        self.stdout = stdout or sys.stdout
        self.prompt = prompt

    def _print(self, text: str) -> None:
        print(text, file=self.stdout, flush=True)

    def status_lines(self) -> list[str]:
        lines = ["Current scanner status:"]
        for kind, label in _STATUS_LABELS.items():
            state = "Enabled" if self.scheduler.is_enabled(kind) else "Disabled"
            if self.scheduler.reconciler.is_running(kind):
                state += " (running)"
            lines.append(f"{label}: {state}")
        return lines

    def handle(self, line: str) -> bool:
        """Execute one command line; returns False when the console should stop."""

        args = line.strip().split()
        if not args:
            return True
        command = args[0].lower()
        if command == "help":
            self._print(HELP_TEXT)
        elif command == "status":
            self._print("\n".join(self.status_lines()))
        elif command == "exit":
            self._print("Exiting console...")
            return False
        elif command in KIND_BY_COMMAND:
            kind = KIND_BY_COMMAND[command]
            logger.info("Manual {} check requested", kind.value)
            self.scheduler.trigger(kind)
        else:
            self._print(f"Unknown command: {command}. Type 'help' for available commands.")
        return True

    def run(self) -> None:
        while True:
            self.stdout.write(self.prompt)
            self.stdout.flush()
            line = self.stdin.readline()
            if not line:
                # EOF: stdin closed (e.g. running detached)
                logger.debug("Console input closed")
                return
            if not self.handle(line):
                return
