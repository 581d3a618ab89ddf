"""
Toast Delivery
==============
Shows newly arrived notifications as short-lived chat messages from the
Notifications author. Each toast removes itself after the configured
duration.
"""

import asyncio
import logging
from typing import Optional

import chainlit as cl

from config.settings import TOASTS, get_author
from services.notifications import Notification
from tools.formatting_tools import format_toast

logger = logging.getLogger(__name__)

# Pending expiry tasks
_expiring: set[asyncio.Task] = set()


async def _expire(message: cl.Message, seconds: float) -> None:
    await asyncio.sleep(seconds)
    await message.remove()


async def show_toasts(notifications: list[Notification], badge: Optional[str] = None) -> None:
    """
    Send one toast per notification, newest first.

    Args:
        notifications: Arrivals from the latest poll
        badge: Unread badge label for the session (e.g. "3", "9+")
    """
    duration = TOASTS["notification_duration_ms"] / 1000
    for notification in notifications:
        message = cl.Message(
            content=format_toast(notification, badge),
            author=get_author("notifications"),
        )
        await message.send()
        task = asyncio.create_task(_expire(message, duration))
        _expiring.add(task)
        task.add_done_callback(_expiring.discard)
    logger.info(f"Showed {len(notifications)} notification toast(s)")
