"""Unified read/unread feed of pricing and system notifications."""

from __future__ import annotations

import itertools
import logging
from collections.abc import Iterable
from typing import Dict, List, Literal

from pydantic import TypeAdapter

from .errors import NotFound, ValidationError
from .models import Notification, PricingNotification, SystemNotification

logger = logging.getLogger(__name__)

NOTIFICATION_ADAPTER: TypeAdapter[Notification] = TypeAdapter(Notification)


class NotificationAggregator:
    """Keeps notifications in one feed, newest first."""

    def __init__(self, notifications: Iterable[Notification] = ()) -> None:
        self._counter = itertools.count()
        self._items: Dict[str, tuple[int, Notification]] = {}
        for notification in notifications:
            self.add(notification)

    def __len__(self) -> int:
        return len(self._items)

    def add(self, notification: Notification) -> Notification:
        if notification.id in self._items:
            raise ValidationError(
                f"Notification '{notification.id}' is already in the feed.",
                identifiers=[notification.id],
            )
        self._items[notification.id] = (next(self._counter), notification)
        logger.debug("Notification %s added to feed (%s)", notification.id, notification.kind)
        return notification

    def extend(self, notifications: Iterable[Notification]) -> List[Notification]:
        return [self.add(notification) for notification in notifications]

    def get(self, notification_id: str) -> Notification:
        try:
            return self._items[notification_id][1]
        except KeyError as exc:
            raise NotFound("Notification", notification_id) from exc

    def mark_read(self, notification_id: str) -> Notification:
        notification = self.get(notification_id)
        notification.read = True
        return notification

    def mark_all_read(self) -> int:
        changed = 0
        for _, notification in self._items.values():
            if not notification.read:
                notification.read = True
                changed += 1
        return changed

    def remove(self, notification_id: str) -> Notification:
        notification = self.get(notification_id)
        del self._items[notification_id]
        logger.debug("Notification %s removed from feed", notification_id)
        return notification

    def unread_count(self) -> int:
        return sum(1 for _, notification in self._items.values() if not notification.read)

    def feed(
        self,
        *,
        unread_only: bool = False,
        source: Literal["pricing", "system"] | None = None,
    ) -> List[Notification]:
        entries = sorted(
            self._items.values(),
            key=lambda item: (item[1].created_at, item[0]),
            reverse=True,
        )
        result: List[Notification] = []
        for _, notification in entries:
            if unread_only and notification.read:
                continue
            if source is not None and notification.source != source:
                continue
            result.append(notification)
        return result

    def pricing(self) -> List[PricingNotification]:
        return [item for item in self.feed(source="pricing") if isinstance(item, PricingNotification)]

    def system(self) -> List[SystemNotification]:
        return [item for item in self.feed(source="system") if isinstance(item, SystemNotification)]

    def to_dict(self) -> dict[str, object]:
        ordered = sorted(self._items.values(), key=lambda item: item[0])
        return {
            "notifications": [
                notification.model_dump(mode="json") for _, notification in ordered
            ],
        }

    @classmethod
    def from_dict(cls, payload: dict[str, object]) -> "NotificationAggregator":
        items = payload.get("notifications", []) or []
        return cls(NOTIFICATION_ADAPTER.validate_python(item) for item in items)
