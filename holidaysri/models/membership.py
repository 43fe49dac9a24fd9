from pydantic import field_validator

from holidaysri.core.enums import MembershipStatus, parse_status
from holidaysri.models.expirable import SWEEP_INDEXES, ExpirableDocument


class Membership(ExpirableDocument):
    membership_type: str  # "monthly" | "yearly"
    status: MembershipStatus = MembershipStatus.ACTIVE

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return parse_status(MembershipStatus, v)

    class Settings:
        name = "memberships"
        indexes = SWEEP_INDEXES + [[("user", 1)]]
