from pydantic import field_validator

from holidaysri.core.enums import PromoCodeStatus, parse_status
from holidaysri.models.expirable import SWEEP_INDEXES, ExpirableDocument


class PromoCode(ExpirableDocument):
    """Agent promo code; earnings are recorded against its owner."""
    promo_code: str
    promo_code_type: str = "free"  # silver | gold | diamond | free
    status: PromoCodeStatus = PromoCodeStatus.ACTIVE
    total_earnings: int = 0
    used_count: int = 0

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, v):
        return parse_status(PromoCodeStatus, v)

    class Settings:
        name = "promo_codes"
        indexes = SWEEP_INDEXES + [[("promo_code", 1)]]
