"""Outbound notification boundary for encounter events."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    async def publish(self, channel_id: str, event: dict[str, Any]) -> None:
        """Deliver one structured event to subscribers of a channel."""


class NullNotifier:
    async def publish(self, channel_id: str, event: dict[str, Any]) -> None:
        return None


class RecordingNotifier:
    def __init__(self) -> None:
        self.published: list[tuple[str, dict[str, Any]]] = []

    async def publish(self, channel_id: str, event: dict[str, Any]) -> None:
        self.published.append((channel_id, event))


async def publish_events(notifier: Notifier, events: Iterable[dict[str, Any]]) -> int:
    """Publish events best-effort. Returns how many were delivered.

    Rewards are already applied when this runs; a failing notifier is logged
    and never rolls anything back.
    """
    delivered = 0
    for event in events:
        channel_id = event.get("channelId")
        if channel_id is None:
            continue
        try:
            await notifier.publish(str(channel_id), event)
        except Exception:
            logger.exception("Failed to publish %s event for channel %s", event.get("kind"), channel_id)
            continue
        delivered += 1
    return delivered
