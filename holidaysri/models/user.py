from datetime import datetime

from beanie import Document, Indexed
from pydantic import BaseModel, Field

from holidaysri.core.clock import utcnow


class BankDetailsFields(BaseModel):
    bank: str = ""
    branch: str = ""
    account_no: str = ""
    account_name: str = ""
    postal_code: str = ""
    binance_id: str = ""


class User(Document):
    email: Indexed(str, unique=True)
    name: str = ""
    role: str = "user"  # "user" | "admin"
    # Token balances: only the ledger writes these
    hsc_balance: int = 0
    hsg_balance: int = 0
    hsd_balance: int = 0
    is_member: bool = False
    membership_type: str | None = None  # "monthly" | "yearly"
    membership_started_at: datetime | None = None
    membership_expires_at: datetime | None = None
    is_partner: bool = False
    partner_expires_at: datetime | None = None
    bank_details: BankDetailsFields = Field(default_factory=BankDetailsFields)
    session_version: int = 0
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "users"
