"""Text of the warning and expired notices sent for each expirable kind."""

from dataclasses import dataclass, field
from datetime import datetime
from zoneinfo import ZoneInfo
from typing import Any

from holidaysri.core.enums import ExpirableKind, NotificationPriority, NotificationSeverity
from holidaysri.schemas import ExpirableRecord

BUSINESS_TZ = "Asia/Colombo"
SIGNATURE = "\n\nThank you,\nHolidaysri Tourism"


@dataclass(frozen=True)
class Notice:
    title: str
    message: str
    severity: NotificationSeverity
    priority: NotificationPriority
    subject: str
    body: str
    data: dict[str, Any] = field(default_factory=dict)


_NOUNS = {
    ExpirableKind.ADVERTISEMENT: "Advertisement",
    ExpirableKind.MEMBERSHIP: "Membership",
    ExpirableKind.COMMERCIAL_PARTNER: "Commercial Partnership",
    ExpirableKind.PROMO_CODE: "Promo Code",
}


def _when(moment: datetime, tz: str) -> str:
    return f"{moment.astimezone(ZoneInfo(tz)):%Y-%m-%d %H:%M} ({tz})"


def _subject_phrase(entity: ExpirableRecord) -> str:
    if entity.kind is ExpirableKind.ADVERTISEMENT:
        where = f" in {entity.category}" if entity.category else ""
        return f"advertisement {entity.label}{where}"
    if entity.kind is ExpirableKind.MEMBERSHIP:
        return f"{entity.label or 'Holidaysri'} membership"
    if entity.kind is ExpirableKind.COMMERCIAL_PARTNER:
        return f"commercial partnership for {entity.label}"
    return f"promo code {entity.label}"


def _data(entity: ExpirableRecord, now: datetime) -> dict[str, Any]:
    data: dict[str, Any] = {
        "entity_type": entity.kind.value,
        "entity_id": entity.id,
        "label": entity.label,
        "expires_at": entity.expires_at.isoformat(),
        "hours_left": max(0, int((entity.expires_at - now).total_seconds() // 3600)),
    }
    if entity.category:
        data["category"] = entity.category
    if entity.content:
        data["content_type"] = entity.content.content_type
        data["content_id"] = entity.content.content_id
    return data


def warning_notice(entity: ExpirableRecord, now: datetime, tz: str = BUSINESS_TZ) -> Notice:
    noun = _NOUNS[entity.kind]
    phrase = _subject_phrase(entity)
    message = (
        f"Your {phrase} will expire on {_when(entity.expires_at, tz)}. "
        "Renew now to keep it active."
    )
    return Notice(
        title=f"{noun} Expiring Soon",
        message=message,
        severity=NotificationSeverity.WARNING,
        priority=NotificationPriority.HIGH,
        subject=f"Your {noun.lower()} is expiring soon - Holidaysri Tourism",
        body=f"Hello,\n\n{message}" + SIGNATURE,
        data=_data(entity, now),
    )


def expired_notice(entity: ExpirableRecord, now: datetime) -> Notice:
    noun = _NOUNS[entity.kind]
    phrase = _subject_phrase(entity)
    message = f"Your {phrase} has expired. You can renew it anytime to restore it."
    if entity.kind is ExpirableKind.ADVERTISEMENT:
        message = f"Your {phrase} has expired and is no longer shown. Renew the slot to publish it again."
    return Notice(
        title=f"{noun} Expired",
        message=message,
        severity=NotificationSeverity.ERROR,
        priority=NotificationPriority.HIGH,
        subject=f"Your {noun.lower()} has expired - Holidaysri Tourism",
        body=f"Hello,\n\n{message}" + SIGNATURE,
        data=_data(entity, now),
    )
