from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Literal

from pydantic import BaseModel

logger = logging.getLogger(__name__)

Severity = Literal["success", "info", "warning", "error"]


class Notification(BaseModel):
    severity: Severity = "info"
    title: str
    detail: str = ""


Notifier = Callable[[Notification], None]


def failure_notification(context: str, detail: str) -> Notification:
    return Notification(severity="error", title=f"Failed to load {context}", detail=detail)


_LEVELS = {
    "success": logging.INFO,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class LoggingNotifier:
    def __call__(self, notification: Notification) -> None:
        logger.log(_LEVELS[notification.severity], "%s: %s", notification.title, notification.detail)


class CollectingNotifier:
    """Keeps the most recent notifications for the UI to drain; optionally forwards them."""

    def __init__(self, forward: Notifier | None = None, *, max_items: int = 50) -> None:
        self._forward = forward
        self._items: deque[Notification] = deque(maxlen=max_items)

    def __call__(self, notification: Notification) -> None:
        self._items.append(notification)
        if self._forward is not None:
            self._forward(notification)

    @property
    def items(self) -> list[Notification]:
        return list(self._items)

    def drain(self) -> list[Notification]:
        out = list(self._items)
        self._items.clear()
        return out
