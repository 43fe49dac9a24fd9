"""Token ledger against the in-memory store."""

import asyncio
from decimal import Decimal

import pytest

from holidaysri.core.enums import PaymentMethod, TokenKind, TransactionType
from holidaysri.core.exceptions import InsufficientBalanceError, InvalidAmountError
from holidaysri.services import ledger as ledger_service
from holidaysri.services import pricing
from holidaysri.services.users import register_user
from holidaysri.storage.memory import MemoryStore

pytestmark = pytest.mark.asyncio


async def test_purchase_credits_balance_and_logs_transaction(store, user):
    result, price = await ledger_service.purchase_tokens(
        store, user.id, TokenKind.HSC, 10, payment_transaction_id="pay_123"
    )
    assert result.balance == 10
    assert price == Decimal("1000.00")
    entry = result.transaction
    assert entry.type == TransactionType.PURCHASE
    assert entry.amount == 10
    assert (entry.balance_before, entry.balance_after) == (0, 10)
    assert entry.payment.method == PaymentMethod.CARD
    assert entry.payment.transaction_id == "pay_123"
    assert entry.reference.startswith("HSC_")
    balances = await ledger_service.get_balances(store, user.id)
    assert balances.HSC == 10
    assert balances.HSG == 0


async def test_spend_beyond_balance_writes_nothing(store, user):
    await ledger_service.credit(store, user.id, TokenKind.HSC, 5, TransactionType.BONUS, "Bonus")
    with pytest.raises(InsufficientBalanceError) as exc:
        await ledger_service.spend(store, user.id, TokenKind.HSC, 10, "Advertisement slot")
    assert "required 10, available 5" in exc.value.message
    assert exc.value.details == {"token": "HSC", "required": 10, "available": 5}
    assert (await ledger_service.get_balances(store, user.id)).HSC == 5
    assert len(await store.list_transactions(user.id)) == 1


async def test_concurrent_debits_never_overdraw():
    store = MemoryStore(latency=0.001)
    account = await store.insert_user("racer@example.com")
    await ledger_service.credit(store, account.id, TokenKind.HSC, 100, TransactionType.PURCHASE, "Top up")

    outcomes = await asyncio.gather(
        *(ledger_service.debit(store, account.id, TokenKind.HSC, 7, f"slot {i}") for i in range(30)),
        return_exceptions=True,
    )
    succeeded = [o for o in outcomes if not isinstance(o, Exception)]
    rejected = [o for o in outcomes if isinstance(o, InsufficientBalanceError)]
    assert len(succeeded) == 100 // 7
    assert len(rejected) == 30 - 100 // 7
    assert (await ledger_service.get_balances(store, account.id)).HSC == 100 - 7 * (100 // 7)
    # every successful debit observed a distinct balance
    assert len({r.transaction.balance_before for r in succeeded}) == len(succeeded)


async def test_balance_matches_transaction_log_for_every_kind():
    store = MemoryStore(latency=0.001)
    account = await store.insert_user("mixed@example.com")
    await ledger_service.credit(store, account.id, TokenKind.HSC, 50, TransactionType.PURCHASE, "Top up")
    await ledger_service.credit(store, account.id, TokenKind.HSG, 20, TransactionType.GIFT, "Gift")
    await asyncio.gather(
        ledger_service.debit(store, account.id, TokenKind.HSC, 15, "Membership"),
        ledger_service.debit(store, account.id, TokenKind.HSG, 5, "Boost"),
        ledger_service.refund(store, account.id, TokenKind.HSC, 3, "Slot cancelled"),
        ledger_service.credit(store, account.id, TokenKind.HSD, 8, TransactionType.BONUS, "Leaderboard"),
        return_exceptions=True,
    )
    for kind in TokenKind:
        report = await ledger_service.audit_balance(store, account.id, kind)
        assert report["consistent"], report
    balances = await ledger_service.get_balances(store, account.id)
    assert (balances.HSC, balances.HSG, balances.HSD) == (38, 15, 8)


@pytest.mark.parametrize("amount", [0, -5, True, 2.5])
async def test_non_positive_or_fractional_amount_rejected(store, user, amount):
    with pytest.raises(InvalidAmountError):
        await ledger_service.credit(store, user.id, TokenKind.HSG, amount, TransactionType.BONUS, "x")
    with pytest.raises(InvalidAmountError):
        await ledger_service.debit(store, user.id, TokenKind.HSG, amount, "x")
    assert await store.list_transactions(user.id) == []


async def test_credit_rejects_spend_type(store, user):
    with pytest.raises(InvalidAmountError):
        await ledger_service.credit(store, user.id, TokenKind.HSC, 5, TransactionType.SPEND, "x")


async def test_refund_is_a_credit(store, user):
    await ledger_service.credit(store, user.id, TokenKind.HSC, 10, TransactionType.PURCHASE, "Top up")
    await ledger_service.spend(store, user.id, TokenKind.HSC, 4, "Ad slot", "advertisement", "ad-1")
    result = await ledger_service.refund(store, user.id, TokenKind.HSC, 4, "Ad slot refund", "advertisement", "ad-1")
    assert result.balance == 10
    assert result.transaction.type == TransactionType.REFUND
    assert result.transaction.related_entity_id == "ad-1"


async def test_transactions_listed_newest_first(store, user):
    await ledger_service.credit(store, user.id, TokenKind.HSC, 10, TransactionType.PURCHASE, "first")
    await ledger_service.debit(store, user.id, TokenKind.HSC, 2, "second")
    await ledger_service.credit(store, user.id, TokenKind.HSG, 1, TransactionType.GIFT, "other kind")
    entries = await ledger_service.list_transactions(store, user.id, TokenKind.HSC)
    assert [e.description for e in entries] == ["second", "first"]
    assert [e.signed_amount for e in entries] == [-2, 10]


async def test_register_user_books_welcome_gift(store):
    account = await register_user(store, "New.Guest@Example.com", name="Guest")
    assert account.email == "new.guest@example.com"
    assert account.hsg_balance == 100
    entries = await store.list_transactions(account.id)
    assert len(entries) == 1
    assert entries[0].type == TransactionType.GIFT
    assert entries[0].token_kind == TokenKind.HSG
    notes = await store.list_notifications(account.id)
    assert notes[0].severity.value == "welcome"
    assert (await ledger_service.audit_balance(store, account.id, TokenKind.HSG))["consistent"]


async def test_distribute_tokens_isolates_failures(store, admin):
    first = await store.insert_user("a@example.com")
    second = await store.insert_user("b@example.com")
    outcome = await ledger_service.distribute_tokens(
        store, [first.id, second.id, "missing", first.id], TokenKind.HSD, 25, "Season reward", admin_id=admin.id
    )
    assert sorted(outcome["credited"]) == sorted([first.id, second.id])
    assert outcome["failed"] == [{"user_id": "missing", "error": "User not found"}]
    assert (await ledger_service.get_balances(store, first.id)).HSD == 25
    entry = (await store.list_transactions(second.id))[0]
    assert entry.payment.method == PaymentMethod.ADMIN_CREDIT
    assert store.audit_events[-1]["event_type"] == "tokens_distributed"
    assert store.audit_events[-1]["user_id"] == admin.id


async def test_pricing_rounding():
    assert pricing.price_in_lkr(TokenKind.HSC, 3) == Decimal("300.00")
    assert pricing.tokens_for_lkr(TokenKind.HSC, Decimal("499.99")) == 4
    assert pricing.tokens_for_lkr(TokenKind.HSG, Decimal("10.5")) == 10
