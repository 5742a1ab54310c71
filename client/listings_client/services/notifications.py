from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

logger = logging.getLogger(__name__)

NotificationLevel = Literal["success", "error", "info"]


@dataclass(frozen=True, slots=True)
class Notification:
    level: NotificationLevel
    message: str


class Notifier:
    """Collects user-facing notifications and forwards them to an optional sink."""

    def __init__(self, sink: Callable[[Notification], None] | None = None) -> None:
        self.sink = sink
        self.history: list[Notification] = []

    def success(self, message: str) -> None:
        self._emit(Notification(level="success", message=message))

    def error(self, message: str) -> None:
        self._emit(Notification(level="error", message=message))

    def info(self, message: str) -> None:
        self._emit(Notification(level="info", message=message))

    def errors(self, messages: list[str]) -> None:
        for message in messages:
            self.error(message)

    def messages(self, level: NotificationLevel | None = None) -> list[str]:
        return [item.message for item in self.history if level is None or item.level == level]

    def _emit(self, notification: Notification) -> None:
        log = logger.warning if notification.level == "error" else logger.info
        log("notification level=%s message=%s", notification.level, notification.message)
        self.history.append(notification)
        if self.sink is not None:
            self.sink(notification)
