"""In-app notifications."""

from typing import Any

from holidaysri.core.enums import NotificationPriority, NotificationSeverity
from holidaysri.core.exceptions import NotificationDeliveryError
from holidaysri.schemas import NotificationRecord
from holidaysri.storage.base import Store


async def notify(
    store: Store,
    user_id: str,
    title: str,
    message: str,
    severity: NotificationSeverity = NotificationSeverity.SYSTEM,
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    data: dict[str, Any] | None = None,
) -> NotificationRecord:
    try:
        return await store.create_notification(
            NotificationRecord(
                user_id=user_id,
                title=title,
                message=message,
                severity=severity,
                priority=priority,
                data=data or {},
            )
        )
    except NotificationDeliveryError:
        raise
    except Exception as e:
        raise NotificationDeliveryError(f"Could not create notification: {e}", details={"user_id": user_id}) from e
