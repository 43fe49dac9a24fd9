"""MongoDB store on Beanie documents. Multi-document writes run inside Mongo transactions."""

import functools
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar

from beanie import Link, PydanticObjectId
from beanie.operators import In
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from holidaysri.core.clock import as_utc, utcnow
from holidaysri.core.enums import ClaimStatus, EarningStatus, ExpirableKind, TokenKind, TransactionType
from holidaysri.core.exceptions import ConflictError, InsufficientBalanceError, NotFoundError, TransientStoreError
from holidaysri.db.init import get_client
from holidaysri.models.advertisement import Advertisement, PublishedContent
from holidaysri.models.audit_log import AuditLog
from holidaysri.models.claim_request import ClaimRequest
from holidaysri.models.commercial_partner import CommercialPartner
from holidaysri.models.earning import Earning
from holidaysri.models.expirable import ExpirableDocument
from holidaysri.models.failed_job import FailedJob
from holidaysri.models.membership import Membership
from holidaysri.models.notification import Notification
from holidaysri.models.promo_code import PromoCode
from holidaysri.models.token_transaction import PaymentFields, TokenTransaction
from holidaysri.models.user import BankDetailsFields, User
from holidaysri.schemas import (
    BankDetails,
    ClaimRecord,
    ContentRef,
    EarningRecord,
    ExpirableRecord,
    NotificationRecord,
    PaymentDetails,
    TransactionDraft,
    TransactionRecord,
    UserAccount,
    new_reference,
)
from holidaysri.storage.base import Store

T = TypeVar("T")


@dataclass(frozen=True)
class _KindFields:
    document: type[ExpirableDocument]
    label_field: str
    category_field: str | None = None


_KINDS: dict[ExpirableKind, _KindFields] = {
    ExpirableKind.ADVERTISEMENT: _KindFields(Advertisement, "slot_id", "category"),
    ExpirableKind.MEMBERSHIP: _KindFields(Membership, "membership_type"),
    ExpirableKind.COMMERCIAL_PARTNER: _KindFields(CommercialPartner, "company_name", "business_type"),
    ExpirableKind.PROMO_CODE: _KindFields(PromoCode, "promo_code", "promo_code_type"),
}

# Owner flags cleared in the same transaction that expires the entity
_OWNER_RESET: dict[ExpirableKind, dict[str, Any]] = {
    ExpirableKind.MEMBERSHIP: {
        "is_member": False,
        "membership_type": None,
        "membership_started_at": None,
        "membership_expires_at": None,
    },
    ExpirableKind.COMMERCIAL_PARTNER: {"is_partner": False, "partner_expires_at": None},
}


# Legacy advertisements were stored as "Published" before the status enum existed
_LIVE_STATUSES = {"$in": ["active", "Published"]}


@contextmanager
def _store_errors():
    try:
        yield
    except PyMongoError as e:
        raise TransientStoreError(f"Document store error: {e}") from e


def _guarded(fn):
    """Surface driver failures as TransientStoreError (503)."""

    @functools.wraps(fn)
    async def wrapper(*args, **kwargs):
        with _store_errors():
            return await fn(*args, **kwargs)

    return wrapper


def _oid(value: str, what: str = "Document") -> PydanticObjectId:
    try:
        return PydanticObjectId(value)
    except (InvalidId, TypeError):
        raise NotFoundError(f"{what} not found") from None


def _ref_id(link: Any) -> str | None:
    if link is None:
        return None
    if isinstance(link, Link):
        return str(link.ref.id)
    return str(link.id)


def _user_record(doc: User) -> UserAccount:
    return UserAccount(
        id=str(doc.id),
        email=doc.email,
        name=doc.name,
        role=doc.role,
        hsc_balance=doc.hsc_balance,
        hsg_balance=doc.hsg_balance,
        hsd_balance=doc.hsd_balance,
        is_member=doc.is_member,
        membership_type=doc.membership_type,
        membership_started_at=doc.membership_started_at,
        membership_expires_at=doc.membership_expires_at,
        is_partner=doc.is_partner,
        partner_expires_at=doc.partner_expires_at,
        bank_details=BankDetails(**doc.bank_details.model_dump()),
        session_version=doc.session_version,
    )


def _transaction_record(doc: TokenTransaction) -> TransactionRecord:
    return TransactionRecord(
        id=str(doc.id),
        user_id=_ref_id(doc.user),
        token_kind=doc.token_kind,
        type=doc.type,
        amount=doc.amount,
        description=doc.description,
        related_entity_type=doc.related_entity_type,
        related_entity_id=doc.related_entity_id,
        payment=PaymentDetails(**doc.payment.model_dump()) if doc.payment else None,
        reference=doc.reference,
        balance_before=doc.balance_before,
        balance_after=doc.balance_after,
        created_at=as_utc(doc.created_at),
    )


def _expirable_record(kind: ExpirableKind, doc: ExpirableDocument) -> ExpirableRecord:
    meta = _KINDS[kind]
    published = getattr(doc, "published_content", None)
    return ExpirableRecord(
        id=str(doc.id),
        kind=kind,
        owner_id=_ref_id(doc.user),
        status=doc.status.value,
        expires_at=as_utc(doc.expires_at),
        expiration_warning_email_sent=doc.expiration_warning_email_sent,
        expired_notification_email_sent=doc.expired_notification_email_sent,
        label=getattr(doc, meta.label_field) or "",
        category=getattr(doc, meta.category_field) if meta.category_field else None,
        content=ContentRef(**published.model_dump()) if published else None,
    )


def _notification_record(doc: Notification) -> NotificationRecord:
    return NotificationRecord(
        id=str(doc.id),
        user_id=_ref_id(doc.user),
        title=doc.title,
        message=doc.message,
        severity=doc.severity,
        priority=doc.priority,
        data=doc.data,
        is_read=doc.is_read,
        created_at=as_utc(doc.created_at),
        expires_at=as_utc(doc.expires_at),
    )


def _earning_record(doc: Earning) -> EarningRecord:
    return EarningRecord(
        id=str(doc.id),
        owner_id=_ref_id(doc.owner),
        owner_email=doc.owner_email,
        buyer_id=_ref_id(doc.buyer),
        buyer_email=doc.buyer_email,
        amount_lkr=doc.amount_lkr,
        promo_code=doc.promo_code,
        item=doc.item,
        item_type=doc.item_type,
        category=doc.category,
        status=doc.status,
        claim_request_id=str(doc.claim_request_id) if doc.claim_request_id else None,
        processed_at=doc.processed_at,
        paid_at=doc.paid_at,
        created_at=as_utc(doc.created_at),
    )


def _claim_record(doc: ClaimRequest) -> ClaimRecord:
    return ClaimRecord(
        id=str(doc.id),
        owner_id=_ref_id(doc.user),
        owner_email=doc.user_email,
        earning_ids=[str(i) for i in doc.earning_ids],
        total_amount_lkr=doc.total_amount_lkr,
        bank_details=BankDetails(**doc.bank_details.model_dump()),
        status=doc.status,
        admin_note=doc.admin_note,
        processed_by=doc.processed_by,
        processed_at=doc.processed_at,
        created_at=as_utc(doc.created_at),
    )


class MongoStore(Store):
    """Requires init_db() and a replica set (transactions)."""

    async def _in_transaction(self, callback: Callable[[Any], Awaitable[T]]) -> T:
        # with_transaction retries TransientTransactionError (write conflicts between concurrent debits)
        with _store_errors():
            async with await get_client().start_session() as session:
                return await session.with_transaction(callback)

    # Users

    @_guarded
    async def get_user(self, user_id: str) -> UserAccount | None:
        try:
            oid = PydanticObjectId(user_id)
        except (InvalidId, TypeError):
            return None
        doc = await User.get(oid)
        return _user_record(doc) if doc else None

    @_guarded
    async def insert_user(self, email: str, name: str = "", role: str = "user") -> UserAccount:
        doc = User(email=email, name=name, role=role)
        try:
            await doc.insert()
        except DuplicateKeyError:
            raise ConflictError("Email already registered") from None
        return _user_record(doc)

    # Ledger

    @_guarded
    async def adjust_balance(self, draft: TransactionDraft) -> TransactionRecord:
        kind = draft.token_kind
        field = kind.balance_field
        user_oid = _oid(draft.user_id, "User")
        delta = draft.type.sign * draft.amount
        users = User.get_motor_collection()
        match: dict[str, Any] = {"_id": user_oid}
        if delta < 0:
            match[field] = {"$gte": draft.amount}

        async def _apply(session) -> TokenTransaction:
            before = await users.find_one_and_update(
                match,
                {"$inc": {field: delta}, "$set": {"updated_at": utcnow()}},
                projection={field: 1},
                return_document=ReturnDocument.BEFORE,
                session=session,
            )
            if before is None:
                current = await users.find_one({"_id": user_oid}, projection={field: 1}, session=session)
                if current is None:
                    raise NotFoundError("User not found")
                raise InsufficientBalanceError(kind.value, required=draft.amount, available=int(current.get(field, 0)))
            balance_before = int(before.get(field, 0))
            entry = TokenTransaction(
                user=User.link_from_id(user_oid),
                token_kind=kind,
                type=draft.type,
                amount=draft.amount,
                description=draft.description,
                balance_before=balance_before,
                balance_after=balance_before + delta,
                related_entity_type=draft.related_entity_type,
                related_entity_id=draft.related_entity_id,
                payment=PaymentFields(**draft.payment.model_dump()) if draft.payment else None,
                reference=new_reference(kind),
            )
            await entry.insert(session=session)
            return entry

        return _transaction_record(await self._in_transaction(_apply))

    @_guarded
    async def list_transactions(
        self,
        user_id: str,
        kind: TokenKind | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TransactionRecord]:
        filters = [TokenTransaction.user.id == _oid(user_id, "User")]
        if kind is not None:
            filters.append(TokenTransaction.token_kind == kind)
        docs = (
            await TokenTransaction.find(*filters)
            .sort(-TokenTransaction.created_at)
            .skip(offset)
            .limit(limit)
            .to_list()
        )
        return [_transaction_record(d) for d in docs]

    @_guarded
    async def sum_transactions(self, user_id: str, kind: TokenKind) -> int:
        pipeline = [
            {"$match": {"user.$id": _oid(user_id, "User"), "token_kind": kind.value}},
            {
                "$group": {
                    "_id": None,
                    "total": {
                        "$sum": {
                            "$cond": [
                                {"$eq": ["$type", TransactionType.SPEND.value]},
                                {"$multiply": ["$amount", -1]},
                                "$amount",
                            ]
                        }
                    },
                }
            },
        ]
        rows = await TokenTransaction.get_motor_collection().aggregate(pipeline).to_list(length=1)
        return int(rows[0]["total"]) if rows else 0

    # Expirable entities

    @_guarded
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
        meta = _KINDS[kind]
        owner_oid = _oid(owner_id, "User") if owner_id else None
        fields: dict[str, Any] = {meta.label_field: label}
        if meta.category_field:
            fields[meta.category_field] = category or "other"
        if content is not None and kind is ExpirableKind.ADVERTISEMENT:
            fields["published_content"] = PublishedContent(**content.model_dump())
        doc = meta.document(
            user=User.link_from_id(owner_oid) if owner_oid else None,
            expires_at=expires_at,
            status="active",
            **fields,
        )
        owner_flags: dict[str, Any] = {}
        if kind is ExpirableKind.MEMBERSHIP:
            owner_flags = {
                "is_member": True,
                "membership_type": label or None,
                "membership_started_at": utcnow(),
                "membership_expires_at": expires_at,
            }
        elif kind is ExpirableKind.COMMERCIAL_PARTNER:
            owner_flags = {"is_partner": True, "partner_expires_at": expires_at}

        async def _insert(session) -> None:
            await doc.insert(session=session)
            if owner_oid and owner_flags:
                await User.get_motor_collection().update_one(
                    {"_id": owner_oid}, {"$set": owner_flags}, session=session
                )

        await self._in_transaction(_insert)
        return _expirable_record(kind, doc)

    @_guarded
    async def get_expirable(self, kind: ExpirableKind, entity_id: str) -> ExpirableRecord | None:
        try:
            oid = PydanticObjectId(entity_id)
        except (InvalidId, TypeError):
            return None
        doc = await _KINDS[kind].document.get(oid)
        return _expirable_record(kind, doc) if doc else None

    @_guarded
    async def find_expiring(
        self,
        kind: ExpirableKind,
        window_start: datetime,
        window_end: datetime,
        limit: int,
    ) -> list[ExpirableRecord]:
        document = _KINDS[kind].document
        docs = (
            await document.find(
                {
                    "status": _LIVE_STATUSES,
                    "expires_at": {"$gte": window_start, "$lte": window_end},
                    "expiration_warning_email_sent": {"$ne": True},
                }
            )
            .sort("+expires_at")
            .limit(limit)
            .to_list()
        )
        return [_expirable_record(kind, d) for d in docs]

    @_guarded
    async def find_expired(self, kind: ExpirableKind, now: datetime, limit: int) -> list[ExpirableRecord]:
        document = _KINDS[kind].document
        docs = (
            await document.find({"status": _LIVE_STATUSES, "expires_at": {"$lt": now, "$ne": None}})
            .sort("+expires_at")
            .limit(limit)
            .to_list()
        )
        return [_expirable_record(kind, d) for d in docs]

    async def _flip_flag(self, kind: ExpirableKind, entity_id: str, flag: str) -> bool:
        collection = _KINDS[kind].document.get_motor_collection()
        result = await collection.update_one(
            {"_id": _oid(entity_id), flag: {"$ne": True}},
            {"$set": {flag: True, "updated_at": utcnow()}},
        )
        return result.modified_count == 1

    @_guarded
    async def mark_warning_sent(self, kind: ExpirableKind, entity_id: str) -> bool:
        return await self._flip_flag(kind, entity_id, "expiration_warning_email_sent")

    @_guarded
    async def mark_expired_notice_sent(self, kind: ExpirableKind, entity_id: str) -> bool:
        return await self._flip_flag(kind, entity_id, "expired_notification_email_sent")

    @_guarded
    async def expire_entity(self, kind: ExpirableKind, entity_id: str, now: datetime) -> bool:
        collection = _KINDS[kind].document.get_motor_collection()
        oid = _oid(entity_id)

        async def _expire(session) -> bool:
            before = await collection.find_one_and_update(
                {"_id": oid, "status": _LIVE_STATUSES},
                {"$set": {"status": "expired", "expired_at": now, "updated_at": now}},
                projection={"user": 1},
                session=session,
            )
            if before is None:
                return False
            owner_ref = before.get("user")
            if owner_ref is not None and kind in _OWNER_RESET:
                await User.get_motor_collection().update_one(
                    {"_id": owner_ref.id}, {"$set": _OWNER_RESET[kind]}, session=session
                )
            return True

        return await self._in_transaction(_expire)

    # Notifications

    @_guarded
    async def create_notification(self, notification: NotificationRecord) -> NotificationRecord:
        doc = Notification(
            user=User.link_from_id(_oid(notification.user_id, "User")),
            title=notification.title,
            message=notification.message,
            severity=notification.severity,
            priority=notification.priority,
            data=notification.data,
            expires_at=notification.expires_at,
        )
        await doc.insert()
        return _notification_record(doc)

    @_guarded
    async def list_notifications(self, user_id: str) -> list[NotificationRecord]:
        docs = (
            await Notification.find(Notification.user.id == _oid(user_id, "User"))
            .sort(-Notification.created_at)
            .to_list()
        )
        return [_notification_record(d) for d in docs]

    # Earnings and claims

    @_guarded
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
        doc = Earning(
            owner=User.link_from_id(_oid(owner_id, "User")),
            owner_email=owner_email,
            buyer=User.link_from_id(_oid(buyer_id, "User")),
            buyer_email=buyer_email,
            amount_lkr=amount_lkr,
            promo_code=promo_code,
            item=item,
            item_type=item_type,
            category=category,
        )
        await doc.insert()
        return _earning_record(doc)

    @_guarded
    async def get_earnings(self, earning_ids: list[str]) -> list[EarningRecord]:
        oids = [PydanticObjectId(i) for i in earning_ids if PydanticObjectId.is_valid(i)]
        docs = await Earning.find(In(Earning.id, oids)).to_list()
        return [_earning_record(d) for d in docs]

    @_guarded
    async def list_earnings(self, owner_id: str, status: EarningStatus | None = None) -> list[EarningRecord]:
        filters = [Earning.owner.id == _oid(owner_id, "User")]
        if status is not None:
            filters.append(Earning.status == status)
        docs = await Earning.find(*filters).sort(-Earning.created_at).to_list()
        return [_earning_record(d) for d in docs]

    @_guarded
    async def create_claim(
        self,
        *,
        owner_id: str,
        owner_email: str,
        earning_ids: list[str],
        total_amount_lkr: Decimal,
        bank_details: BankDetails,
    ) -> ClaimRecord:
        owner_oid = _oid(owner_id, "User")
        earning_oids = [_oid(i, "Earning") for i in earning_ids]
        claim = ClaimRequest(
            id=PydanticObjectId(),
            user=User.link_from_id(owner_oid),
            user_email=owner_email,
            earning_ids=earning_oids,
            total_amount_lkr=total_amount_lkr,
            bank_details=BankDetailsFields(**bank_details.model_dump()),
        )

        async def _reserve(session) -> None:
            result = await Earning.get_motor_collection().update_many(
                {
                    "_id": {"$in": earning_oids},
                    "owner.$id": owner_oid,
                    "status": EarningStatus.PENDING.value,
                    "claim_request_id": None,
                },
                {"$set": {"claim_request_id": claim.id}},
                session=session,
            )
            if result.modified_count != len(earning_oids):
                raise ConflictError("Some selected earnings are invalid or already claimed")
            await claim.insert(session=session)

        await self._in_transaction(_reserve)
        return _claim_record(claim)

    @_guarded
    async def get_claim(self, claim_id: str) -> ClaimRecord | None:
        try:
            oid = PydanticObjectId(claim_id)
        except (InvalidId, TypeError):
            return None
        doc = await ClaimRequest.get(oid)
        return _claim_record(doc) if doc else None

    @_guarded
    async def list_claims(self, status: ClaimStatus | None = None, limit: int = 50, offset: int = 0) -> list[ClaimRecord]:
        query = ClaimRequest.find(ClaimRequest.status == status) if status else ClaimRequest.find_all()
        docs = await query.sort(-ClaimRequest.created_at).skip(offset).limit(limit).to_list()
        return [_claim_record(d) for d in docs]

    @_guarded
    async def settle_claim(
        self,
        claim_id: str,
        status: ClaimStatus,
        *,
        admin: str,
        note: str | None,
        now: datetime,
    ) -> ClaimRecord:
        oid = _oid(claim_id, "Claim request")
        claims = ClaimRequest.get_motor_collection()
        earnings = Earning.get_motor_collection()

        async def _settle(session) -> None:
            updated = await claims.find_one_and_update(
                {"_id": oid, "status": ClaimStatus.PENDING.value},
                {"$set": {"status": status.value, "admin_note": note, "processed_by": admin, "processed_at": now}},
                projection={"_id": 1},
                session=session,
            )
            if updated is None:
                existing = await claims.find_one({"_id": oid}, projection={"status": 1}, session=session)
                if existing is None:
                    raise NotFoundError("Claim request not found")
                raise ConflictError("Claim request already processed", details={"status": existing["status"]})
            if status == ClaimStatus.APPROVED:
                change = {"status": EarningStatus.PAID.value, "processed_at": now, "paid_at": now}
            else:
                change = {"claim_request_id": None}
            await earnings.update_many({"claim_request_id": oid}, {"$set": change}, session=session)

        await self._in_transaction(_settle)
        doc = await ClaimRequest.get(oid)
        return _claim_record(doc)

    # Operations

    @_guarded
    async def log_event(
        self,
        user_id: str | None,
        event_type: str,
        entity_type: str,
        entity_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        await AuditLog(
            user_id=user_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata=metadata or {},
        ).insert()

    @_guarded
    async def record_failed_job(
        self,
        job_name: str,
        job_id: str,
        reason: str,
        args: list[Any] | None = None,
        kwargs: dict[str, Any] | None = None,
    ) -> None:
        await FailedJob(
            job_name=job_name,
            job_id=job_id,
            args=args or [],
            kwargs=kwargs or {},
            reason=reason[:2000],
        ).insert()
