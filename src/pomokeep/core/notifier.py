"""Completion signals and the one-way sink the engine appends them to."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Protocol

from pomokeep.core.snapshot import Mode

NOTIFICATION_ID = "pomodoro-timer-finished"
ICON_URL = "icons/icon-128.png"
HIGH_PRIORITY = 2

_TEXT = {
    Mode.WORK: ("Work session complete!", "Great job! Time to take a break."),
    Mode.REST: ("Break is over!", "Break finished. Ready to focus again?"),
}


@dataclass(frozen=True)
class Notification:
    """Payload announcing that a session of ``mode`` has run out."""

    mode: Mode
    title: str
    message: str
    notification_id: str = NOTIFICATION_ID
    icon_url: str = ICON_URL
    priority: int = HIGH_PRIORITY


def completion_notification(mode: Mode) -> Notification:
    title, message = _TEXT[mode]
    return Notification(mode=mode, title=title, message=message)


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class Outbox:
    """In-memory queue of pending notifications, drained by the front-end."""

    def __init__(self) -> None:
        self._pending: deque[Notification] = deque()

    def notify(self, notification: Notification) -> None:
        self._pending.append(notification)

    def drain(self) -> list[Notification]:
        drained = list(self._pending)
        self._pending.clear()
        return drained

    def __len__(self) -> int:
        return len(self._pending)
