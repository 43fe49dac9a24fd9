from pydantic import BaseModel, field_validator

from holidaysri.core.enums import AdvertisementStatus, parse_status
from holidaysri.models.expirable import SWEEP_INDEXES, ExpirableDocument


class PublishedContent(BaseModel):
    content_type: str  # e.g. "hotels_accommodations"
    content_id: str


class Advertisement(ExpirableDocument):
    slot_id: str
    category: str
    slot_type: str = "category_slot"  # "home_banner" | "category_slot"
    status: AdvertisementStatus = AdvertisementStatus.DRAFT
    hsc_cost: int = 0
    published_content: PublishedContent | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return parse_status(AdvertisementStatus, v)

    class Settings:
        name = "advertisements"
        indexes = SWEEP_INDEXES + [[("user", 1)], [("category", 1), ("status", 1)]]
