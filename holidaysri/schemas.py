"""Backend-neutral records passed between services and storage backends."""

import secrets
import time
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from holidaysri.core.clock import utcnow
from holidaysri.core.enums import (
    ClaimStatus,
    EarningStatus,
    ExpirableKind,
    NotificationPriority,
    NotificationSeverity,
    PaymentMethod,
    PaymentStatus,
    TokenKind,
    TransactionType,
)


def new_reference(kind: TokenKind) -> str:
    return f"{kind.value}_{int(time.time() * 1000)}_{secrets.token_hex(6)}"


class BankDetails(BaseModel):
    bank: str = ""
    branch: str = ""
    account_no: str = ""
    account_name: str = ""
    postal_code: str = ""
    binance_id: str = ""

    def is_payable(self) -> bool:
        complete = all([self.bank, self.branch, self.account_no, self.account_name, self.postal_code])
        return complete or bool(self.binance_id.strip())


class UserAccount(BaseModel):
    id: str
    email: str
    name: str = ""
    role: str = "user"
    hsc_balance: int = 0
    hsg_balance: int = 0
    hsd_balance: int = 0
    is_member: bool = False
    membership_type: str | None = None
    membership_started_at: datetime | None = None
    membership_expires_at: datetime | None = None
    is_partner: bool = False
    partner_expires_at: datetime | None = None
    bank_details: BankDetails = Field(default_factory=BankDetails)
    session_version: int = 0

    def balance(self, kind: TokenKind) -> int:
        return getattr(self, kind.balance_field)


class Balances(BaseModel):
    HSC: int = 0
    HSG: int = 0
    HSD: int = 0

    @classmethod
    def of(cls, user: UserAccount) -> "Balances":
        return cls(HSC=user.hsc_balance, HSG=user.hsg_balance, HSD=user.hsd_balance)


class PaymentDetails(BaseModel):
    method: PaymentMethod
    transaction_id: str | None = None
    status: PaymentStatus = PaymentStatus.COMPLETED


class ContentRef(BaseModel):
    """Tagged pointer to a published listing; never dereferenced by the core."""
    content_type: str
    content_id: str


class TransactionDraft(BaseModel):
    """Everything about a ledger entry except the balances the store observes."""
    user_id: str
    token_kind: TokenKind
    type: TransactionType
    amount: int
    description: str
    related_entity_type: str | None = None
    related_entity_id: str | None = None
    payment: PaymentDetails | None = None


class TransactionRecord(TransactionDraft):
    id: str
    reference: str
    balance_before: int
    balance_after: int
    created_at: datetime

    @property
    def signed_amount(self) -> int:
        return self.type.sign * self.amount


class LedgerResult(BaseModel):
    balance: int
    transaction: TransactionRecord


class ExpirableRecord(BaseModel):
    id: str
    kind: ExpirableKind
    owner_id: str | None = None
    status: str
    expires_at: datetime
    expiration_warning_email_sent: bool = False
    expired_notification_email_sent: bool = False
    label: str = ""
    category: str | None = None
    content: ContentRef | None = None


class NotificationRecord(BaseModel):
    id: str | None = None
    user_id: str
    title: str
    message: str
    severity: NotificationSeverity = NotificationSeverity.SYSTEM
    priority: NotificationPriority = NotificationPriority.MEDIUM
    data: dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime = Field(default_factory=lambda: utcnow() + timedelta(days=30))


class EarningRecord(BaseModel):
    id: str
    owner_id: str
    owner_email: str = ""
    buyer_id: str
    buyer_email: str
    amount_lkr: Decimal
    promo_code: str
    item: str
    item_type: str
    category: str = "Promo Codes"
    status: EarningStatus = EarningStatus.PENDING
    claim_request_id: str | None = None
    processed_at: datetime | None = None
    paid_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)


class ClaimRecord(BaseModel):
    id: str
    owner_id: str
    owner_email: str
    earning_ids: list[str]
    total_amount_lkr: Decimal
    bank_details: BankDetails = Field(default_factory=BankDetails)
    status: ClaimStatus = ClaimStatus.PENDING
    admin_note: str | None = None
    processed_by: str | None = None
    processed_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)
