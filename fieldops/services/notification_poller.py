"""
Reference pull client for the notification delivery channel.

Fetches the most recent notifications for one role at a fixed interval,
reports the ones that appeared since the previous poll and keeps an
unread count over the fetched window. Notifications older than the window
are neither counted nor shown.

Usage:
    async with httpx.AsyncClient(base_url="http://localhost:8000") as client:
        poller = NotificationPoller(client, TargetRole.CHEF_SECTION)
        await poller.run(stop_event)
"""
import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

import httpx

from fieldops.config import get_settings
from fieldops.models.enums import TargetRole
from fieldops.schemas import NotificationResponse
from fieldops.utils.logger import get_logger
from fieldops.utils.redirects import resolve_redirect

settings = get_settings()
logger = get_logger(__name__)


@dataclass
class PollResult:
    notifications: List[NotificationResponse]
    new: List[NotificationResponse] = field(default_factory=list)
    unread_count: int = 0


class NotificationPoller:
    def __init__(
        self,
        client: httpx.AsyncClient,
        role: TargetRole,
        interval: Optional[float] = None,
        limit: Optional[int] = None,
        on_new: Optional[Callable[[NotificationResponse], Awaitable[None]]] = None,
    ):
        self.client = client
        self.role = role
        self.interval = interval if interval is not None else settings.NOTIFICATION_POLL_INTERVAL_SECONDS
        self.limit = limit or settings.NOTIFICATION_LIST_LIMIT
        self.on_new = on_new
        self.notifications: List[NotificationResponse] = []
        self.last_seen_id: Optional[str] = None
        self.error: Optional[str] = None

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.is_read)

    async def poll_once(self) -> PollResult:
        """Fetch the window; the very first poll never reports anything as new"""
        response = await self.client.get(
            "/api/notifications/",
            params={"role": self.role.value, "limit": self.limit},
        )
        response.raise_for_status()
        notifications = [NotificationResponse.model_validate(item) for item in response.json()]

        new: List[NotificationResponse] = []
        if notifications:
            latest = notifications[0]
            if self.last_seen_id is not None and latest.id != self.last_seen_id:
                for notification in notifications:
                    if notification.id == self.last_seen_id:
                        break
                    new.append(notification)
            self.last_seen_id = latest.id

        self.notifications = notifications
        self.error = None
        return PollResult(notifications=notifications, new=new, unread_count=self.unread_count)

    async def mark_read(self, notification_id: str) -> bool:
        """Acknowledge on the server, then update the local copy"""
        try:
            response = await self.client.patch("/api/notifications/", json={"id": notification_id})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Could not mark notification {notification_id} as read: {e}")
            return False

        self.notifications = [
            n.model_copy(update={"is_read": True}) if n.id == notification_id else n
            for n in self.notifications
        ]
        return True

    async def open(self, notification: NotificationResponse) -> Optional[str]:
        """Mark as read and return where the click should lead"""
        await self.mark_read(notification.id)
        return resolve_redirect(self.role, notification.payload)

    async def run(self, stop_event: asyncio.Event) -> None:
        logger.info(f"Notification poller started for {self.role.value} every {self.interval}s")

        while not stop_event.is_set():
            try:
                result = await self.poll_once()
                if self.on_new:
                    for notification in reversed(result.new):
                        await self.on_new(notification)
            except httpx.HTTPError as e:
                self.error = str(e)
                logger.error(f"Notification poll failed for {self.role.value}: {e}")

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Notification poller stopped for {self.role.value}")
