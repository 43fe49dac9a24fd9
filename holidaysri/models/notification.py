from datetime import datetime, timedelta
from typing import Any

from beanie import Document, Link
from pydantic import Field

from holidaysri.core.clock import utcnow
from holidaysri.core.enums import NotificationPriority, NotificationSeverity
from holidaysri.models.user import User


class Notification(Document):
    user: Link[User]
    title: str
    message: str
    severity: NotificationSeverity = NotificationSeverity.SYSTEM
    priority: NotificationPriority = NotificationPriority.MEDIUM
    data: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(default_factory=lambda: utcnow() + timedelta(days=30))

    class Settings:
        name = "notifications"
        indexes = [
            [("user", 1), ("created_at", -1)],
            [("user", 1), ("is_read", 1)],
        ]
