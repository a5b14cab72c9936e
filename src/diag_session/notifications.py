from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import uuid4

from loguru import logger


def utc_now() -> str:
    return datetime.now(UTC).isoformat(timespec="seconds")


@dataclass(frozen=True)
class Notification:
    id: str
    level: str
    title: str
    message: str
    created_at: str


class NotificationCenter:
    def __init__(self) -> None:
        self._active: list[Notification] = []

    @property
    def active(self) -> list[Notification]:
        return list(self._active)

    def show_success(self, message: str, title: str = "Success") -> Notification:
        logger.info(f"{title}: {message}")
        return self._push("success", title, message)

    def show_critical(self, message: str, title: str = "Error") -> Notification:
        logger.error(f"{title}: {message}")
        return self._push("critical", title, message)

    def dismiss(self, notification_id: str) -> bool:
        before = len(self._active)
        self._active = [n for n in self._active if n.id != notification_id]
        return len(self._active) != before

    def dismiss_all(self) -> None:
        self._active.clear()

    def _push(self, level: str, title: str, message: str) -> Notification:
        notification = Notification(
            id=str(uuid4()),
            level=level,
            title=title,
            message=message,
            created_at=utc_now(),
        )
        self._active.append(notification)
        return notification
