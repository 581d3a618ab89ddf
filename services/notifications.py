"""
Notification Service
====================
Polls the unread-notifications endpoint and works out which notifications
are new to this console session, so each one is toasted once.

The first successful poll only records the session start: anything that
already existed is treated as seen. Later polls keep the notifications
created after the session start, and anything beyond the count from the
previous poll is new. Dismissing all moves the session start to now.

Server-side read state is separate; mark_as_read() and mark_all_as_read()
update it and adjust the local view when the server accepts the change.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from config.settings import POLLING
from orchestration.error_handler import TransportFailure
from services.api_client import ConsoleApiClient

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
NewNotificationsCallback = Callable[[list["Notification"]], Awaitable[None]]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime:
    """ISO-8601 string (or datetime) to an aware UTC datetime."""
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Notification:
    id: Any
    created_at: datetime
    body: str
    ticket_id: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict) -> "Notification":
        return cls(
            id=data.get("id"),
            created_at=parse_timestamp(data.get("created_at")),
            body=str(data.get("message_body") or data.get("body") or ""),
            ticket_id=data.get("ticket_id"),
        )


class NotificationTracker:
    """
    Session-scoped dedup state. Pure: no I/O, time comes from the clock.

    Attributes:
        session_start: Set on the first successful poll, reset by dismiss_all()
        seen_count: Number of session notifications already classified
        baseline_size: Unread notifications present when the session started
        notifications: Current session notifications (badge list)
        new_notifications: Arrivals from the latest poll awaiting a toast
    """

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or utc_now
        self.session_start: Optional[datetime] = None
        self.seen_count = 0
        self.baseline_size = 0
        self.notifications: list[Notification] = []
        self.new_notifications: list[Notification] = []

    @property
    def unread_count(self) -> int:
        return len(self.notifications)

    def ingest(self, unread: list[Notification]) -> list[Notification]:
        """
        Classify one poll result.

        Returns:
            Notifications that arrived since the previous poll
        """
        if self.session_start is None:
            self.session_start = self._clock()
            self.baseline_size = len(unread)
            logger.debug(f"Notification baseline: {self.baseline_size} already unread")
            return []

        session_items = [n for n in unread if n.created_at > self.session_start]
        arrived: list[Notification] = []
        if len(session_items) > self.seen_count:
            # The endpoint lists newest first
            arrived = session_items[: len(session_items) - self.seen_count]
            self.new_notifications = arrived

        self.seen_count = len(session_items)
        self.notifications = session_items
        return arrived

    def clear_new(self) -> None:
        self.new_notifications = []

    def dismiss_all(self) -> None:
        """Forget everything seen so far; only later arrivals count as new."""
        self.notifications = []
        self.seen_count = 0
        self.session_start = self._clock()

    def remove(self, notification_id: Any) -> None:
        remaining = [n for n in self.notifications if n.id != notification_id]
        if len(remaining) != len(self.notifications):
            self.notifications = remaining
            self.seen_count = max(0, self.seen_count - 1)

    def remove_all(self) -> None:
        self.notifications = []
        self.seen_count = 0


class NotificationPoller:
    """Runs a NotificationTracker against the backend on a fixed interval."""

    def __init__(
        self,
        client: ConsoleApiClient,
        on_new: Optional[NewNotificationsCallback] = None,
        interval_seconds: Optional[float] = None,
        clock: Optional[Clock] = None,
    ):
        self._client = client
        self._on_new = on_new
        self._interval = (
            POLLING["notifications_interval_seconds"]
            if interval_seconds is None
            else interval_seconds
        )
        self.tracker = NotificationTracker(clock=clock)
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Poll now, then every interval until stop()."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run())
        logger.info(f"Notification polling started (interval: {self._interval}s)")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        logger.info("Notification polling stopped")

    async def _run(self) -> None:
        while True:
            try:
                await self.poll()
            except Exception as e:
                # A failing toast must not stop polling
                logger.error(f"Notification delivery failed: {e}", exc_info=True)
            await asyncio.sleep(self._interval)

    async def poll(self) -> list[Notification]:
        """
        Fetch once and classify. Failures keep the previous state and are
        retried on the next tick.
        """
        try:
            raw = await self._client.get_unread_notifications()
        except TransportFailure as e:
            logger.debug(f"Notification poll failed, will retry: {e}")
            return []
        if not isinstance(raw, list):
            logger.debug(f"Notification poll returned {type(raw).__name__}, will retry")
            return []

        unread = []
        for item in raw:
            try:
                unread.append(Notification.from_api(item))
            except (ValueError, TypeError, AttributeError) as e:
                # Unreadable rows never count as session notifications
                logger.debug(f"Skipping unreadable notification {item!r}: {e}")

        arrived = self.tracker.ingest(unread)
        if arrived and self._on_new is not None:
            await self._on_new(arrived)
            self.tracker.clear_new()
        return arrived

    async def refetch(self) -> list[Notification]:
        """One poll outside the interval."""
        return await self.poll()

    async def mark_as_read(self, notification_id: Any) -> bool:
        try:
            await self._client.mark_notification_read(notification_id)
        except TransportFailure as e:
            logger.debug(f"Mark as read failed for {notification_id}: {e}")
            return False
        self.tracker.remove(notification_id)
        return True

    async def mark_all_as_read(self) -> bool:
        try:
            await self._client.mark_all_notifications_read()
        except TransportFailure as e:
            logger.debug(f"Mark all as read failed: {e}")
            return False
        self.tracker.remove_all()
        return True

    def dismiss_all(self) -> None:
        self.tracker.dismiss_all()
