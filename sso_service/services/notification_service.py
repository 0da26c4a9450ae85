"""Notification sinks for user-facing security events"""

from abc import ABC, abstractmethod
from typing import Any

from sso_service.core.config import logger


class NotificationSink(ABC):
    """Delivers security notifications (lockouts, new clients, ...) to a user"""

    @abstractmethod
    async def notify(
        self,
        user_id: str | None,
        event: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Deliver one notification"""


class LoggingNotificationSink(NotificationSink):
    """Writes notifications to the service log"""

    async def notify(
        self,
        user_id: str | None,
        event: str,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        logger.info(
            f"Notification {event}: {message}",
            extra={"user_id": user_id, "event": event, "data": data or {}},
        )


async def safe_notify(
    sink: NotificationSink | None,
    user_id: str | None,
    event: str,
    message: str,
    data: dict[str, Any] | None = None,
) -> None:
    """Deliver a notification; delivery failures are logged and dropped"""
    if sink is None:
        return
    try:
        await sink.notify(user_id, event, message, data)
    except Exception as e:
        logger.error(f"Notification delivery failed for {event}: {e}")
