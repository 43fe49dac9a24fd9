"""Single-process store for local development and tests."""

import asyncio
import secrets
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any

from holidaysri.core.clock import utcnow
from holidaysri.core.enums import (
    STATUS_BY_KIND,
    ClaimStatus,
    EarningStatus,
    ExpirableKind,
    TokenKind,
    parse_status,
)
from holidaysri.core.exceptions import ConflictError, InsufficientBalanceError, NotFoundError
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
    new_reference,
)
from holidaysri.storage.base import Store


def _new_id() -> str:
    return secrets.token_hex(12)


class MemoryStore(Store):
    """
    Keeps every collection in dicts. Balance changes are linearized with one
    asyncio.Lock per (user, token kind); ``latency`` simulates store round-trips.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self._users: dict[str, UserAccount] = {}
        self._transactions: list[TransactionRecord] = []
        self._expirables: dict[ExpirableKind, dict[str, ExpirableRecord]] = defaultdict(dict)
        self._notifications: list[NotificationRecord] = []
        self._earnings: dict[str, EarningRecord] = {}
        self._claims: dict[str, ClaimRecord] = {}
        self.audit_events: list[dict[str, Any]] = []
        self.failed_jobs: list[dict[str, Any]] = []
        self._balance_locks: dict[tuple[str, TokenKind], asyncio.Lock] = defaultdict(asyncio.Lock)
        self._claims_lock = asyncio.Lock()

    async def _roundtrip(self) -> None:
        await asyncio.sleep(self.latency)

    def _patch_user(self, user_id: str, **fields: Any) -> None:
        current = self._users[user_id]
        self._users[user_id] = current.model_copy(update=fields)

    # Users

    async def get_user(self, user_id: str) -> UserAccount | None:
        await self._roundtrip()
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def insert_user(self, email: str, name: str = "", role: str = "user") -> UserAccount:
        await self._roundtrip()
        if any(u.email == email for u in self._users.values()):
            raise ConflictError("Email already registered")
        user = UserAccount(id=_new_id(), email=email, name=name, role=role)
        self._users[user.id] = user
        return user.model_copy(deep=True)

    # Ledger

    async def adjust_balance(self, draft: TransactionDraft) -> TransactionRecord:
        kind = draft.token_kind
        delta = draft.type.sign * draft.amount
        async with self._balance_locks[(draft.user_id, kind)]:
            await self._roundtrip()
            user = self._users.get(draft.user_id)
            if user is None:
                raise NotFoundError("User not found")
            before = user.balance(kind)
            after = before + delta
            if after < 0:
                raise InsufficientBalanceError(kind.value, required=draft.amount, available=before)
            await self._roundtrip()
            record = TransactionRecord(
                **draft.model_dump(),
                id=_new_id(),
                reference=new_reference(kind),
                balance_before=before,
                balance_after=after,
                created_at=utcnow(),
            )
            self._patch_user(draft.user_id, **{kind.balance_field: after})
            self._transactions.append(record)
        return record.model_copy(deep=True)

    async def list_transactions(
        self,
        user_id: str,
        kind: TokenKind | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        await self._roundtrip()
        rows = [
            t for t in reversed(self._transactions)
            if t.user_id == user_id and (kind is None or t.token_kind == kind)
        ]
        return [t.model_copy(deep=True) for t in rows[offset:offset + limit]]

    async def sum_transactions(self, user_id: str, kind: TokenKind) -> int:
        await self._roundtrip()
        return sum(t.signed_amount for t in self._transactions if t.user_id == user_id and t.token_kind == kind)

    # Expirable entities

    def _is_active(self, record: ExpirableRecord) -> bool:
        status_cls = STATUS_BY_KIND[record.kind]
        return parse_status(status_cls, record.status) == status_cls("active")

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
        await self._roundtrip()
        record = ExpirableRecord(
            id=_new_id(),
            kind=kind,
            owner_id=owner_id,
            status="active",
            expires_at=expires_at,
            label=label,
            category=category,
            content=content,
        )
        self._expirables[kind][record.id] = record
        if owner_id in self._users:
            if kind is ExpirableKind.MEMBERSHIP:
                self._patch_user(
                    owner_id,
                    is_member=True,
                    membership_type=label or None,
                    membership_started_at=utcnow(),
                    membership_expires_at=expires_at,
                )
            elif kind is ExpirableKind.COMMERCIAL_PARTNER:
                self._patch_user(owner_id, is_partner=True, partner_expires_at=expires_at)
        return record.model_copy(deep=True)

    async def get_expirable(self, kind: ExpirableKind, entity_id: str) -> ExpirableRecord | None:
        await self._roundtrip()
        record = self._expirables[kind].get(entity_id)
        return record.model_copy(deep=True) if record else None

    async def find_expiring(
        self,
        kind: ExpirableKind,
        window_start: datetime,
        window_end: datetime,
        limit: int,
    ) -> list[ExpirableRecord]:
        await self._roundtrip()
        rows = [
            r for r in self._expirables[kind].values()
            if self._is_active(r)
            and not r.expiration_warning_email_sent
            and window_start <= r.expires_at <= window_end
        ]
        rows.sort(key=lambda r: r.expires_at)
        return [r.model_copy(deep=True) for r in rows[:limit]]

    async def find_expired(self, kind: ExpirableKind, now: datetime, limit: int) -> list[ExpirableRecord]:
        await self._roundtrip()
        rows = [r for r in self._expirables[kind].values() if self._is_active(r) and r.expires_at < now]
        rows.sort(key=lambda r: r.expires_at)
        return [r.model_copy(deep=True) for r in rows[:limit]]

    async def _flip_flag(self, kind: ExpirableKind, entity_id: str, flag: str) -> bool:
        await self._roundtrip()
        record = self._expirables[kind].get(entity_id)
        if record is None or getattr(record, flag):
            return False
        self._expirables[kind][entity_id] = record.model_copy(update={flag: True})
        return True

    async def mark_warning_sent(self, kind: ExpirableKind, entity_id: str) -> bool:
        return await self._flip_flag(kind, entity_id, "expiration_warning_email_sent")

    async def mark_expired_notice_sent(self, kind: ExpirableKind, entity_id: str) -> bool:
        return await self._flip_flag(kind, entity_id, "expired_notification_email_sent")

    async def expire_entity(self, kind: ExpirableKind, entity_id: str, now: datetime) -> bool:
        await self._roundtrip()
        record = self._expirables[kind].get(entity_id)
        if record is None or not self._is_active(record):
            return False
        self._expirables[kind][entity_id] = record.model_copy(update={"status": "expired"})
        owner_id = record.owner_id
        if owner_id in self._users:
            if kind is ExpirableKind.MEMBERSHIP:
                self._patch_user(
                    owner_id,
                    is_member=False,
                    membership_type=None,
                    membership_started_at=None,
                    membership_expires_at=None,
                )
            elif kind is ExpirableKind.COMMERCIAL_PARTNER:
                self._patch_user(owner_id, is_partner=False, partner_expires_at=None)
        return True

    # Notifications

    async def create_notification(self, notification: NotificationRecord) -> NotificationRecord:
        await self._roundtrip()
        stored = notification.model_copy(update={"id": _new_id()})
        self._notifications.append(stored)
        return stored.model_copy(deep=True)

    async def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        await self._roundtrip()
        return [n.model_copy(deep=True) for n in reversed(self._notifications) if n.user_id == user_id]

    # Earnings and claims

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
        await self._roundtrip()
        earning = EarningRecord(
            id=_new_id(),
            owner_id=owner_id,
            owner_email=owner_email,
            buyer_id=buyer_id,
            buyer_email=buyer_email,
            amount_lkr=amount_lkr,
            promo_code=promo_code,
            item=item,
            item_type=item_type,
            category=category,
        )
        self._earnings[earning.id] = earning
        return earning.model_copy(deep=True)

    async def get_earnings(self, earning_ids: list[str]) -> list[EarningRecord]:
        await self._roundtrip()
        return [self._earnings[i].model_copy(deep=True) for i in earning_ids if i in self._earnings]

    async def list_earnings(self, owner_id: str, status: EarningStatus | None = None) -> list[EarningRecord]:
        await self._roundtrip()
        rows = [
            e for e in self._earnings.values()
            if e.owner_id == owner_id and (status is None or e.status == status)
        ]
        rows.sort(key=lambda e: e.created_at, reverse=True)
        return [e.model_copy(deep=True) for e in rows]

    async def create_claim(
        self,
        *,
        owner_id: str,
        owner_email: str,
        earning_ids: list[str],
        total_amount_lkr: Decimal,
        bank_details: BankDetails,
    ) -> ClaimRecord:
        async with self._claims_lock:
            await self._roundtrip()
            for earning_id in earning_ids:
                e = self._earnings.get(earning_id)
                if (
                    e is None
                    or e.owner_id != owner_id
                    or e.status != EarningStatus.PENDING
                    or e.claim_request_id is not None
                ):
                    raise ConflictError(
                        "Some selected earnings are invalid or already claimed",
                        details={"earning_id": earning_id},
                    )
            claim = ClaimRecord(
                id=_new_id(),
                owner_id=owner_id,
                owner_email=owner_email,
                earning_ids=list(earning_ids),
                total_amount_lkr=total_amount_lkr,
                bank_details=bank_details,
            )
            for earning_id in earning_ids:
                self._earnings[earning_id] = self._earnings[earning_id].model_copy(
                    update={"claim_request_id": claim.id}
                )
            self._claims[claim.id] = claim
        return claim.model_copy(deep=True)

    async def get_claim(self, claim_id: str) -> ClaimRecord | None:
        await self._roundtrip()
        claim = self._claims.get(claim_id)
        return claim.model_copy(deep=True) if claim else None

    async def list_claims(self, status: ClaimStatus | None = None, limit: int = 50, offset: int = 0) -> list[ClaimRecord]:
        await self._roundtrip()
        rows = [c for c in self._claims.values() if status is None or c.status == status]
        rows.sort(key=lambda c: c.created_at, reverse=True)
        return [c.model_copy(deep=True) for c in rows[offset:offset + limit]]

    async def settle_claim(
        self,
        claim_id: str,
        status: ClaimStatus,
        *,
        admin: str,
        note: str | None,
        now: datetime,
    ) -> ClaimRecord:
        async with self._claims_lock:
            await self._roundtrip()
            claim = self._claims.get(claim_id)
            if claim is None:
                raise NotFoundError("Claim request not found")
            if claim.status != ClaimStatus.PENDING:
                raise ConflictError("Claim request already processed", details={"status": claim.status.value})
            for earning_id in claim.earning_ids:
                earning = self._earnings[earning_id]
                if status == ClaimStatus.APPROVED:
                    update = {"status": EarningStatus.PAID, "processed_at": now, "paid_at": now}
                else:
                    update = {"claim_request_id": None}
                self._earnings[earning_id] = earning.model_copy(update=update)
            settled = claim.model_copy(
                update={"status": status, "admin_note": note, "processed_by": admin, "processed_at": now}
            )
            self._claims[claim_id] = settled
        return settled.model_copy(deep=True)

    # Operations

    async def log_event(
        self,
        user_id: str | None,
        event_type: str,
        entity_type: str,
        entity_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await self._roundtrip()
        self.audit_events.append(
            {
                "user_id": user_id,
                "event_type": event_type,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "metadata": metadata or {},
                "created_at": utcnow(),
            }
        )

    async def record_failed_job(
        self,
        job_name: str,
        job_id: str,
        reason: str,
        args: list[Any] | None = None,
        kwargs: dict[str, Any] | None = None,
    ) -> None:
        await self._roundtrip()
        self.failed_jobs.append(
            {"job_name": job_name, "job_id": job_id, "reason": reason, "args": args or [], "kwargs": kwargs or {}}
        )
