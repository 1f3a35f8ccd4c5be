"""
Notification surface implementations.

Notifications are fire-and-forget: a surface reports delivery problems in the
log and never raises into the caller.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import aiohttp

from core.logging_config import get_logger

logger = get_logger(__name__)


class NotificationSurface(ABC):
    """Abstract base class for places an alert can be shown."""

    @abstractmethod
    async def create(self, notification_id: str, title: str, message: str, priority: int = 0) -> None:
        """
        Show a notification.

        Args:
            notification_id: Unique notification ID
            title: Short title
            message: Body text
            priority: 0 (low) to 2 (high)
        """


class LogNotificationSurface(NotificationSurface):
    """Writes notifications to the structured log."""

    async def create(self, notification_id: str, title: str, message: str, priority: int = 0) -> None:
        logger.warning(
            "notification_created",
            notification_id=notification_id,
            title=title,
            message=message,
            priority=priority,
        )


class WebhookNotificationSurface(NotificationSurface):
    """Posts notifications as JSON to a webhook URL."""

    def __init__(self, url: str, timeout: int = 10, headers: Optional[Dict[str, str]] = None):
        """
        Initialize webhook surface.

        Args:
            url: Webhook endpoint
            timeout: Request timeout in seconds
            headers: Extra request headers
        """
        self.url = url
        self.timeout = timeout
        self.headers = headers or {}

    def _build_payload(self, notification_id: str, title: str, message: str, priority: int) -> Dict[str, Any]:
        return {
            "id": notification_id,
            "title": title,
            "message": message,
            "priority": priority,
        }

    async def create(self, notification_id: str, title: str, message: str, priority: int = 0) -> None:
        payload = self._build_payload(notification_id, title, message, priority)
        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.url, json=payload, headers=self.headers) as response:
                    if response.status >= 400:
                        logger.error(
                            "webhook_notification_rejected",
                            notification_id=notification_id,
                            status=response.status,
                        )
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("webhook_notification_failed", notification_id=notification_id, error=str(e))


class InMemoryNotificationSurface(NotificationSurface):
    """Keeps notifications in a list; used by the CLI dry runs and tests."""

    def __init__(self):
        self.notifications: List[Dict[str, Any]] = []

    async def create(self, notification_id: str, title: str, message: str, priority: int = 0) -> None:
        self.notifications.append({
            "id": notification_id,
            "title": title,
            "message": message,
            "priority": priority,
        })
