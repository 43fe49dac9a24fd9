from pydantic import field_validator

from holidaysri.core.enums import PartnerStatus, parse_status
from holidaysri.models.expirable import SWEEP_INDEXES, ExpirableDocument


class CommercialPartner(ExpirableDocument):
    company_name: str
    business_type: str = "Other"
    partnership_type: str = "monthly"  # "monthly" | "yearly"
    status: PartnerStatus = PartnerStatus.ACTIVE

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return parse_status(PartnerStatus, v)

    class Settings:
        name = "commercial_partners"
        indexes = SWEEP_INDEXES + [[("user", 1)]]
