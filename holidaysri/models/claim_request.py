from datetime import datetime

from beanie import DecimalAnnotation, Document, Link, PydanticObjectId
from pydantic import Field

from holidaysri.core.clock import utcnow
from holidaysri.core.enums import ClaimStatus
from holidaysri.models.user import BankDetailsFields, User


class ClaimRequest(Document):
    user: Link[User]
    user_email: str
    earning_ids: list[PydanticObjectId]
    total_amount_lkr: DecimalAnnotation
    bank_details: BankDetailsFields = Field(default_factory=BankDetailsFields)
    status: ClaimStatus = ClaimStatus.PENDING
    admin_note: str | None = None
    processed_by: str | None = None  # admin who settled it
    processed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "claim_requests"
        indexes = [
            [("user", 1)],
            [("status", 1), ("created_at", -1)],
        ]
