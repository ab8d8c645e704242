"""Notifier doubles."""

from __future__ import annotations

from storefront.exceptions import NotificationFailureError
from storefront.notifications import Notification, NotificationKind


class RecordingNotifier:
    """Keeps every notification it is asked to send."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)

    @property
    def kinds(self) -> list[NotificationKind]:
        return [notification.kind for notification in self.sent]


class FailingNotifier:
    """Fails every send; counts the attempts."""

    def __init__(self) -> None:
        self.attempts = 0

    async def send(self, notification: Notification) -> None:
        self.attempts += 1
        raise NotificationFailureError(
            notification.recipient, notification.kind.value, "mail server unavailable"
        )


class FlakyNotifier(RecordingNotifier):
    """Fails the first ``failures`` sends, then delivers."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures
        self.attempts = 0

    async def send(self, notification: Notification) -> None:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise ConnectionError("mail server reset the connection")
        await super().send(notification)
