"""Token kinds, transaction types and per-entity status machines."""

from enum import Enum
from typing import TypeVar

from holidaysri.core.exceptions import InvalidStateTransitionError


class TokenKind(str, Enum):
    HSC = "HSC"
    HSG = "HSG"
    HSD = "HSD"

    @property
    def balance_field(self) -> str:
        return f"{self.value.lower()}_balance"


class TransactionType(str, Enum):
    PURCHASE = "purchase"
    SPEND = "spend"
    REFUND = "refund"
    BONUS = "bonus"
    GIFT = "gift"

    @property
    def sign(self) -> int:
        return -1 if self is TransactionType.SPEND else 1


CREDIT_TYPES = frozenset(
    {TransactionType.PURCHASE, TransactionType.REFUND, TransactionType.BONUS, TransactionType.GIFT}
)


class PaymentMethod(str, Enum):
    CARD = "card"
    BANK_TRANSFER = "bank_transfer"
    ADMIN_CREDIT = "admin_credit"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class ExpirableKind(str, Enum):
    ADVERTISEMENT = "advertisement"
    MEMBERSHIP = "membership"
    COMMERCIAL_PARTNER = "commercial_partner"
    PROMO_CODE = "promo_code"


class AdvertisementStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    EXPIRED = "expired"
    REJECTED = "rejected"


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PartnerStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class PromoCodeStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class EarningStatus(str, Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    PAID = "paid"


class ClaimStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationSeverity(str, Enum):
    WELCOME = "welcome"
    PURCHASE = "purchase"
    EARNING = "earning"
    SYSTEM = "system"
    PROMOTION = "promotion"
    WARNING = "warning"
    ADVERTISEMENT = "advertisement"
    ERROR = "error"


class NotificationPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Renewal (out of the sweeper's hands) is the only way back to active.
TRANSITIONS: dict[type[Enum], dict[Enum, frozenset[Enum]]] = {
    AdvertisementStatus: {
        AdvertisementStatus.DRAFT: frozenset({AdvertisementStatus.ACTIVE, AdvertisementStatus.REJECTED}),
        AdvertisementStatus.ACTIVE: frozenset({AdvertisementStatus.PAUSED, AdvertisementStatus.EXPIRED}),
        AdvertisementStatus.PAUSED: frozenset({AdvertisementStatus.ACTIVE, AdvertisementStatus.EXPIRED}),
        AdvertisementStatus.EXPIRED: frozenset({AdvertisementStatus.ACTIVE}),
        AdvertisementStatus.REJECTED: frozenset(),
    },
    MembershipStatus: {
        MembershipStatus.ACTIVE: frozenset({MembershipStatus.EXPIRED, MembershipStatus.CANCELLED}),
        MembershipStatus.EXPIRED: frozenset({MembershipStatus.ACTIVE}),
        MembershipStatus.CANCELLED: frozenset(),
    },
    PartnerStatus: {
        PartnerStatus.ACTIVE: frozenset({PartnerStatus.EXPIRED, PartnerStatus.CANCELLED}),
        PartnerStatus.EXPIRED: frozenset({PartnerStatus.ACTIVE}),
        PartnerStatus.CANCELLED: frozenset(),
    },
    PromoCodeStatus: {
        PromoCodeStatus.ACTIVE: frozenset({PromoCodeStatus.EXPIRED}),
        PromoCodeStatus.EXPIRED: frozenset({PromoCodeStatus.ACTIVE}),
    },
}

STATUS_BY_KIND: dict[ExpirableKind, type[Enum]] = {
    ExpirableKind.ADVERTISEMENT: AdvertisementStatus,
    ExpirableKind.MEMBERSHIP: MembershipStatus,
    ExpirableKind.COMMERCIAL_PARTNER: PartnerStatus,
    ExpirableKind.PROMO_CODE: PromoCodeStatus,
}

_LEGACY_ALIASES = {"published": "active"}

E = TypeVar("E", bound=Enum)


def parse_status(enum_cls: type[E], raw: "str | E") -> E:
    """Case-insensitive lookup that also maps legacy values such as ``Published``."""
    if isinstance(raw, enum_cls):
        return raw
    value = str(raw).strip().lower()
    value = _LEGACY_ALIASES.get(value, value)
    return enum_cls(value)


def can_transition(current: Enum, target: Enum) -> bool:
    table = TRANSITIONS[type(current)]
    return target in table.get(current, frozenset())


def ensure_transition(entity: str, current: Enum, target: Enum) -> None:
    if not can_transition(current, target):
        raise InvalidStateTransitionError(entity, current.value, target.value)
