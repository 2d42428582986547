"""Best-effort real-time delivery of committed notifications."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from .models import Notification
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)

NOTIFICATION_CREATED_EVENT = "notificationCreated"
NOTIFICATIONS_SNAPSHOT_EVENT = "notificationsSnapshot"


@dataclass(slots=True)
class DeliveryReport:
    """Outcome of one push round."""

    delivered: int = 0
    failed: int = 0
    offline: list[str] = field(default_factory=list)


class NotificationDispatcher:
    """Push notifications to live channels after the durable write committed.

    Pushing never blocks the write path: :meth:`dispatch` schedules a task and
    returns immediately. A failing channel is logged and skipped so one
    recipient can never prevent delivery to the others.
    """

    def __init__(self, registry: ConnectionRegistry) -> None:
        self._registry = registry
        self._pending: set[asyncio.Task[DeliveryReport]] = set()

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    def dispatch(self, notifications: Sequence[Notification]) -> asyncio.Task[DeliveryReport] | None:
        if not notifications:
            return None
        task = asyncio.get_running_loop().create_task(self.deliver(list(notifications)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def deliver(self, notifications: Sequence[Notification]) -> DeliveryReport:
        report = DeliveryReport()
        for notification in notifications:
            channels = self._registry.channels_for(notification.recipient_id)
            if not channels:
                report.offline.append(notification.recipient_id)
                continue
            payload = {"event": NOTIFICATION_CREATED_EVENT, "notification": notification.to_payload()}
            for channel in channels:
                try:
                    await channel.send_json(payload)
                except Exception:  # noqa: BLE001
                    report.failed += 1
                    logger.warning(
                        "Failed to push notification %s to recipient %s",
                        notification.id,
                        notification.recipient_id,
                        exc_info=True,
                    )
                    self._registry.unregister(notification.recipient_id, channel)
                else:
                    report.delivered += 1
        logger.debug(
            "Pushed %d notification event(s), %d failed, %d recipient(s) offline",
            report.delivered,
            report.failed,
            len(report.offline),
        )
        return report

    async def drain(self) -> None:
        """Wait for every scheduled push to finish."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
