from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from functools import lru_cache
from typing import Any

from holidaysri.core.config import get_settings
from holidaysri.core.enums import ClaimStatus, EarningStatus, ExpirableKind, TokenKind
from holidaysri.schemas import (
    BankDetails,
    ClaimRecord,
    ContentRef,
    EarningRecord,
    ExpirableRecord,
    NotificationRecord,
    TransactionDraft,
    TransactionRecord,
    UserAccount,
)


class Store(ABC):
    """Document-store seam used by the ledger, the sweepers and claim settlement."""

    # Users

    @abstractmethod
    async def get_user(self, user_id: str) -> UserAccount | None:
        ...

    @abstractmethod
    async def insert_user(self, email: str, name: str = "", role: str = "user") -> UserAccount:
        ...

    # Ledger

    @abstractmethod
    async def adjust_balance(self, draft: TransactionDraft) -> TransactionRecord:
        """
        Apply ``draft.type.sign * draft.amount`` to the user's balance of ``draft.token_kind``
        and insert the transaction, as one atomic unit per (user, token kind).
        Raises NotFoundError, InsufficientBalanceError or TransientStoreError; nothing is written then.
        """
        ...

    @abstractmethod
    async def list_transactions(
        self,
        user_id: str,
        kind: TokenKind | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        """Newest first."""
        ...

    @abstractmethod
    async def sum_transactions(self, user_id: str, kind: TokenKind) -> int:
        """Signed sum of every transaction of one token kind."""
        ...

    # Expirable entities

    @abstractmethod
    async def insert_expirable(
        self,
        kind: ExpirableKind,
        *,
        owner_id: str | None,
        expires_at: datetime,
        label: str = "",
        category: str | None = None,
        content: ContentRef | None = None,
    ) -> ExpirableRecord:
        """Create an active entity; memberships and partnerships also flag the owner."""
        ...

    @abstractmethod
    async def get_expirable(self, kind: ExpirableKind, entity_id: str) -> ExpirableRecord | None:
        ...

    @abstractmethod
    async def find_expiring(
        self,
        kind: ExpirableKind,
        window_start: datetime,
        window_end: datetime,
        limit: int,
    ) -> list[ExpirableRecord]:
        """Active, not yet warned, window_start <= expires_at <= window_end."""
        ...

    @abstractmethod
    async def find_expired(self, kind: ExpirableKind, now: datetime, limit: int) -> list[ExpirableRecord]:
        """Active with expires_at < now."""
        ...

    @abstractmethod
    async def mark_warning_sent(self, kind: ExpirableKind, entity_id: str) -> bool:
        """Flip expiration_warning_email_sent false -> true. False when another run already did."""
        ...

    @abstractmethod
    async def expire_entity(self, kind: ExpirableKind, entity_id: str, now: datetime) -> bool:
        """Move an active entity to expired (clearing owner flags where relevant). False when not active."""
        ...

    @abstractmethod
    async def mark_expired_notice_sent(self, kind: ExpirableKind, entity_id: str) -> bool:
        ...

    # Notifications

    @abstractmethod
    async def create_notification(self, notification: NotificationRecord) -> NotificationRecord:
        ...

    @abstractmethod
    async def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        ...

    # Earnings and claims

    @abstractmethod
    async def insert_earning(
        self,
        *,
        owner_id: str,
        owner_email: str,
        buyer_id: str,
        buyer_email: str,
        amount_lkr: Decimal,
        promo_code: str,
        item: str,
        item_type: str,
        category: str = "Promo Codes",
    ) -> EarningRecord:
        ...

    @abstractmethod
    async def get_earnings(self, earning_ids: list[str]) -> list[EarningRecord]:
        ...

    @abstractmethod
    async def list_earnings(self, owner_id: str, status: EarningStatus | None = None) -> list[EarningRecord]:
        ...

    @abstractmethod
    async def create_claim(
        self,
        *,
        owner_id: str,
        owner_email: str,
        earning_ids: list[str],
        total_amount_lkr: Decimal,
        bank_details: BankDetails,
    ) -> ClaimRecord:
        """Reserve every earning (owned, pending, unreserved) and insert the claim atomically; ConflictError otherwise."""
        ...

    @abstractmethod
    async def get_claim(self, claim_id: str) -> ClaimRecord | None:
        ...

    @abstractmethod
    async def list_claims(self, status: ClaimStatus | None = None, limit: int = 50, offset: int = 0) -> list[ClaimRecord]:
        ...

    @abstractmethod
    async def settle_claim(
        self,
        claim_id: str,
        status: ClaimStatus,
        *,
        admin: str,
        note: str | None,
        now: datetime,
    ) -> ClaimRecord:
        """
        Pending claim -> approved (earnings paid) or rejected (reservations released).
        NotFoundError for unknown ids, ConflictError when the claim is no longer pending.
        """
        ...

    # Operations

    @abstractmethod
    async def log_event(
        self,
        user_id: str | None,
        event_type: str,
        entity_type: str,
        entity_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        ...

    @abstractmethod
    async def record_failed_job(
        self,
        job_name: str,
        job_id: str,
        reason: str,
        args: list[Any] | None = None,
        kwargs: dict[str, Any] | None = None,
    ) -> None:
        ...


@lru_cache
def get_store() -> Store:
    settings = get_settings()
    if settings.store_backend == "memory":
        from holidaysri.storage.memory import MemoryStore
        return MemoryStore()
    from holidaysri.storage.mongo import MongoStore
    return MongoStore()
