from datetime import datetime

from beanie import Document, Indexed, Link
from pydantic import BaseModel, Field

from holidaysri.core.clock import utcnow
from holidaysri.core.enums import PaymentMethod, PaymentStatus, TokenKind, TransactionType
from holidaysri.models.user import User


class PaymentFields(BaseModel):
    method: PaymentMethod
    transaction_id: str | None = None
    status: PaymentStatus = PaymentStatus.COMPLETED


class TokenTransaction(Document):
    """Immutable ledger entry; inserted in the same Mongo transaction as the balance $inc."""
    user: Link[User]
    token_kind: TokenKind = TokenKind.HSC
    type: TransactionType
    amount: int  # always positive, direction comes from type
    description: str
    balance_before: int
    balance_after: int
    related_entity_type: str | None = None  # advertisement, membership, ...
    related_entity_id: str | None = None
    payment: PaymentFields | None = None
    reference: Indexed(str, unique=True)
    created_at: datetime = Field(default_factory=utcnow)

    class Settings:
        name = "token_transactions"
        indexes = [
            [("user", 1), ("token_kind", 1), ("created_at", -1)],
        ]
