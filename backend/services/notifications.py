"""Dashboard notification feed backed by a bundled sample set."""

from __future__ import annotations

from typing import Optional

from models.crisis import Notification, NotificationCategory
from utils.logger import get_logger
from services.crisis_data.catalog_loader import CrisisDataCatalog

logger = get_logger("notifications")


class NotificationService:
    """Read state lives in process memory only; a restart marks everything unread again."""

    def __init__(self, catalog: Optional[CrisisDataCatalog] = None) -> None:
        self._catalog = catalog or CrisisDataCatalog("notifications.json", {"notifications": []})
        self._read_ids: set[str] = set()

    def _load(self) -> list[Notification]:
        notifications = []
        for raw in self._catalog.section("notifications", []):
            try:
                item = Notification.model_validate(raw)
            except ValueError as e:
                logger.warning("Skipping invalid notification", error=str(e))
                continue
            if item.id in self._read_ids:
                item.read = True
            notifications.append(item)
        return notifications

    def list_notifications(
        self,
        unread_only: bool = False,
        category: Optional[NotificationCategory] = None,
        min_priority: int = 1,
    ) -> list[Notification]:
        """Highest priority first; feed order is kept within a priority."""
        items = [
            n
            for n in self._load()
            if (not unread_only or not n.read)
            and (category is None or n.category == category)
            and n.priority >= min_priority
        ]
        items.sort(key=lambda n: n.priority, reverse=True)
        return items

    def mark_read(self, notification_id: str) -> Optional[Notification]:
        for item in self._load():
            if item.id == notification_id:
                self._read_ids.add(notification_id)
                item.read = True
                return item
        return None

    def unread_count(self) -> int:
        return sum(1 for n in self._load() if not n.read)
