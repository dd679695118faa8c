"""User-facing notifications (toasts) raised by the coordinator.

The coordinator never renders anything. It hands :class:`Notification`
objects to a :class:`NotificationSink`; the host decides how to show them.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal, Protocol

from .logging_setup import get_logger

type NotificationLevel = Literal["info", "success", "error"]


@dataclass(frozen=True, slots=True)
class NotificationAction:
    """A button attached to a notification (e.g. ``UNDO``)."""

    label: str
    callback: Callable[[], Any]

    def __call__(self) -> Any:
        return self.callback()


@dataclass(frozen=True, slots=True)
class Notification:
    message: str
    level: NotificationLevel = "info"
    action: NotificationAction | None = None


class NotificationSink(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotificationSink:
    """Default sink: write notifications to the package log."""

    def __init__(self) -> None:
        self._logger = get_logger("bakery_ledger.notifications")

    def notify(self, notification: Notification) -> None:
        suffix = f" [{notification.action.label}]" if notification.action else ""
        if notification.level == "error":
            self._logger.error("%s%s", notification.message, suffix)
        else:
            self._logger.info("%s%s", notification.message, suffix)


__all__ = [
    "NotificationLevel",
    "NotificationAction",
    "Notification",
    "NotificationSink",
    "LoggingNotificationSink",
]
