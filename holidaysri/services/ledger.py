"""Token ledger: the only code path that changes HSC/HSG/HSD balances."""

import asyncio
from decimal import Decimal
from typing import Any

from holidaysri.core.config import get_settings
from holidaysri.core.enums import CREDIT_TYPES, PaymentMethod, PaymentStatus, TokenKind, TransactionType
from holidaysri.core.exceptions import AppError, InvalidAmountError, NotFoundError
from holidaysri.core.logging import get_logger
from holidaysri.core.pagination import paginate
from holidaysri.schemas import Balances, LedgerResult, PaymentDetails, TransactionDraft, TransactionRecord
from holidaysri.services import pricing
from holidaysri.storage.base import Store

log = get_logger(__name__)


def _check_amount(amount: Any) -> int:
    # bool is an int subclass; True is not a token amount
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError("Amount must be a positive whole number of tokens", details={"amount": str(amount)})
    return amount


async def credit(
    store: Store,
    user_id: str,
    kind: TokenKind,
    amount: int,
    type: TransactionType,
    description: str,
    *,
    related_entity_type: str | None = None,
    related_entity_id: str | None = None,
    payment: PaymentDetails | None = None,
) -> LedgerResult:
    """Add tokens. ``type`` must be one of purchase, bonus, gift or refund."""
    _check_amount(amount)
    if type not in CREDIT_TYPES:
        raise InvalidAmountError(f"{type.value} is not a credit transaction type")
    entry = await store.adjust_balance(
        TransactionDraft(
            user_id=user_id,
            token_kind=kind,
            type=type,
            amount=amount,
            description=description,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            payment=payment,
        )
    )
    log.info(
        "ledger_credit",
        user_id=user_id,
        token=kind.value,
        type=type.value,
        amount=amount,
        balance_after=entry.balance_after,
        reference=entry.reference,
    )
    return LedgerResult(balance=entry.balance_after, transaction=entry)


async def debit(
    store: Store,
    user_id: str,
    kind: TokenKind,
    amount: int,
    description: str,
    *,
    related_entity_type: str | None = None,
    related_entity_id: str | None = None,
) -> LedgerResult:
    """
    Remove tokens (type spend). Raises InsufficientBalanceError when the balance
    observed inside the atomic step is lower than ``amount``; nothing is written then.
    """
    _check_amount(amount)
    entry = await store.adjust_balance(
        TransactionDraft(
            user_id=user_id,
            token_kind=kind,
            type=TransactionType.SPEND,
            amount=amount,
            description=description,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
        )
    )
    log.info(
        "ledger_debit",
        user_id=user_id,
        token=kind.value,
        amount=amount,
        balance_after=entry.balance_after,
        reference=entry.reference,
    )
    return LedgerResult(balance=entry.balance_after, transaction=entry)


async def spend(
    store: Store,
    user_id: str,
    kind: TokenKind,
    amount: int,
    description: str,
    related_entity_type: str | None = None,
    related_entity_id: str | None = None,
) -> LedgerResult:
    return await debit(
        store,
        user_id,
        kind,
        amount,
        description,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
    )


async def refund(
    store: Store,
    user_id: str,
    kind: TokenKind,
    amount: int,
    description: str,
    related_entity_type: str | None = None,
    related_entity_id: str | None = None,
) -> LedgerResult:
    return await credit(
        store,
        user_id,
        kind,
        amount,
        TransactionType.REFUND,
        description,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
    )


async def purchase_tokens(
    store: Store,
    user_id: str,
    kind: TokenKind,
    tokens: int,
    payment_method: PaymentMethod = PaymentMethod.CARD,
    payment_transaction_id: str | None = None,
) -> tuple[LedgerResult, Decimal]:
    """Credit a completed purchase. Returns (result, price in LKR)."""
    _check_amount(tokens)
    price = pricing.price_in_lkr(kind, tokens)
    result = await credit(
        store,
        user_id,
        kind,
        tokens,
        TransactionType.PURCHASE,
        f"Purchased {tokens} {kind.value} tokens",
        payment=PaymentDetails(
            method=payment_method,
            transaction_id=payment_transaction_id,
            status=PaymentStatus.COMPLETED,
        ),
    )
    return result, price


async def purchase_tokens_for_lkr(
    store: Store,
    user_id: str,
    kind: TokenKind,
    amount_lkr: Decimal,
    payment_method: PaymentMethod = PaymentMethod.CARD,
    payment_transaction_id: str | None = None,
) -> tuple[LedgerResult, Decimal]:
    """Top up by LKR paid. Only whole tokens are credited; the returned price is what they cost."""
    tokens = pricing.tokens_for_lkr(kind, amount_lkr)
    if tokens <= 0:
        raise InvalidAmountError(
            f"Amount buys no {kind.value} tokens",
            details={"amount_lkr": str(amount_lkr), "token_value_lkr": str(pricing.token_value_lkr(kind))},
        )
    return await purchase_tokens(store, user_id, kind, tokens, payment_method, payment_transaction_id)


async def open_account(store: Store, user_id: str) -> LedgerResult | None:
    """Welcome gift for a new user, booked through the ledger so the audit sum matches from day one."""
    gift = get_settings().welcome_hsg_gift
    if gift <= 0:
        return None
    return await credit(
        store,
        user_id,
        TokenKind.HSG,
        gift,
        TransactionType.GIFT,
        "Welcome gift",
    )


async def get_balances(store: Store, user_id: str) -> Balances:
    user = await store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    return Balances.of(user)


async def list_transactions(
    store: Store,
    user_id: str,
    kind: TokenKind | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[TransactionRecord]:
    limit, offset = paginate(limit, offset)
    return await store.list_transactions(user_id, kind, limit=limit, offset=offset)


async def audit_balance(store: Store, user_id: str, kind: TokenKind) -> dict:
    """Compare the stored balance with the signed sum of the transaction log."""
    user = await store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    stored = user.balance(kind)
    computed = await store.sum_transactions(user_id, kind)
    if stored != computed:
        log.warning("ledger_balance_mismatch", user_id=user_id, token=kind.value, stored=stored, computed=computed)
    return {"token": kind.value, "stored": stored, "computed": computed, "consistent": stored == computed}


async def distribute_tokens(
    store: Store,
    user_ids: list[str],
    kind: TokenKind,
    amount: int,
    description: str,
    *,
    admin_id: str | None = None,
) -> dict:
    """
    Gift ``amount`` tokens to every user. Each credit is its own atomic ledger entry;
    a failure for one user is reported and does not stop the others.
    """
    _check_amount(amount)
    targets = list(dict.fromkeys(user_ids))
    payment = PaymentDetails(method=PaymentMethod.ADMIN_CREDIT, status=PaymentStatus.COMPLETED)
    outcomes = await asyncio.gather(
        *(
            credit(store, uid, kind, amount, TransactionType.GIFT, description, payment=payment)
            for uid in targets
        ),
        return_exceptions=True,
    )
    credited: list[str] = []
    failed: list[dict] = []
    for uid, outcome in zip(targets, outcomes):
        if isinstance(outcome, AppError):
            failed.append({"user_id": uid, "error": outcome.message})
        elif isinstance(outcome, BaseException):
            log.error("distribute_credit_failed", user_id=uid, error=str(outcome))
            failed.append({"user_id": uid, "error": str(outcome)})
        else:
            credited.append(uid)
    await store.log_event(
        admin_id,
        "tokens_distributed",
        "token_transaction",
        metadata={
            "token": kind.value,
            "amount": amount,
            "credited": len(credited),
            "failed": len(failed),
            "description": description,
        },
    )
    log.info("tokens_distributed", token=kind.value, amount=amount, credited=len(credited), failed=len(failed))
    return {"token": kind.value, "amount": amount, "credited": credited, "failed": failed}
