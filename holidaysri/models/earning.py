from datetime import datetime

from beanie import DecimalAnnotation, Document, Link, PydanticObjectId
from pydantic import Field

from holidaysri.core.clock import utcnow
from holidaysri.core.enums import EarningStatus
from holidaysri.models.user import User


class Earning(Document):
    """Money (LKR) owed to a promo-code owner for a purchase made with the code."""
    owner: Link[User]
    owner_email: str = ""
    buyer: Link[User]
    buyer_email: str
    amount_lkr: DecimalAnnotation
    promo_code: str
    item: str
    item_type: str
    category: str = "Promo Codes"
    status: EarningStatus = EarningStatus.PENDING
    claim_request_id: PydanticObjectId | None = None
    processed_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "earnings"
        indexes = [
            [("owner", 1), ("status", 1)],
            [("status", 1), ("created_at", -1)],
            [("claim_request_id", 1)],
        ]
