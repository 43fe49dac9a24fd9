"""Earnings and claim settlement."""

import asyncio
from decimal import Decimal

import pytest
import pytest_asyncio

from holidaysri.core.enums import ClaimStatus, EarningStatus, NotificationSeverity
from holidaysri.core.exceptions import BadRequestError, ConflictError, InvalidAmountError, NotFoundError
from holidaysri.schemas import BankDetails
from holidaysri.services import claims as claims_service
from holidaysri.storage.memory import MemoryStore

pytestmark = pytest.mark.asyncio

BANK = BankDetails(
    bank="Bank of Ceylon",
    branch="Galle",
    account_no="0011223344",
    account_name="A. Perera",
    postal_code="80000",
)


@pytest_asyncio.fixture
async def agent(store):
    return await store.insert_user("agent@example.com", name="Agent")


async def earn(store, agent, buyer, amount: str, item="Silver promo code"):
    return await claims_service.record_earning(
        store, agent.id, buyer.id, Decimal(amount), "holi2026", item, "promo_code"
    )


async def test_approved_claim_pays_every_earning(store, mailer, agent, user, admin):
    earnings = [await earn(store, agent, user, "2000") for _ in range(3)]
    assert earnings[0].promo_code == "HOLI2026"

    claim = await claims_service.create_claim(store, agent.id, [e.id for e in earnings], BANK)
    assert claim.status == ClaimStatus.PENDING
    assert claim.total_amount_lkr == Decimal("6000.00")
    reserved = await store.get_earnings([e.id for e in earnings])
    assert all(e.claim_request_id == claim.id and e.status == EarningStatus.PENDING for e in reserved)

    approved = await claims_service.approve_claim(store, mailer, claim.id, admin.id, note="Paid via BOC")

    assert approved.status == ClaimStatus.APPROVED
    assert approved.processed_by == admin.id
    assert approved.processed_at is not None
    paid = await store.get_earnings([e.id for e in earnings])
    assert all(e.status == EarningStatus.PAID for e in paid)
    assert all(e.paid_at is not None and e.processed_at is not None for e in paid)
    assert len(mailer.sent) == 1
    assert mailer.sent[0][0] == agent.email
    notes = await store.list_notifications(agent.id)
    assert [n.severity for n in notes] == [NotificationSeverity.EARNING]
    assert [e["event_type"] for e in store.audit_events] == ["claim_requested", "claim_approved"]


async def test_claim_over_foreign_earning_rejected(store, agent, user):
    other_agent = await store.insert_user("other@example.com")
    mine = await earn(store, agent, user, "4000")
    theirs = await earn(store, other_agent, user, "4000")
    with pytest.raises(BadRequestError):
        await claims_service.create_claim(store, agent.id, [mine.id, theirs.id], BANK)
    assert (await store.get_earnings([mine.id]))[0].claim_request_id is None


async def test_reserved_earning_cannot_be_claimed_twice(store, agent, user):
    earning = await earn(store, agent, user, "6000")
    await claims_service.create_claim(store, agent.id, [earning.id], BANK)
    with pytest.raises(ConflictError):
        await claims_service.create_claim(store, agent.id, [earning.id], BANK)


async def test_concurrent_claims_over_same_earnings_one_wins(user):
    store = MemoryStore(latency=0.001)
    agent = await store.insert_user("racer-agent@example.com")
    buyer = await store.insert_user(user.email)
    earning = await earn(store, agent, buyer, "5500")

    outcomes = await asyncio.gather(
        claims_service.create_claim(store, agent.id, [earning.id], BANK),
        claims_service.create_claim(store, agent.id, [earning.id], BANK),
        return_exceptions=True,
    )

    assert sum(1 for o in outcomes if isinstance(o, ConflictError)) == 1
    assert len(await store.list_claims()) == 1


async def test_rejected_claim_releases_earnings(store, agent, user, admin):
    earnings = [await earn(store, agent, user, "2500") for _ in range(2)]
    claim = await claims_service.create_claim(store, agent.id, [e.id for e in earnings], BANK)

    rejected = await claims_service.reject_claim(store, claim.id, admin.id, note="Account name mismatch")

    assert rejected.status == ClaimStatus.REJECTED
    assert rejected.admin_note == "Account name mismatch"
    released = await store.get_earnings([e.id for e in earnings])
    assert all(e.status == EarningStatus.PENDING and e.claim_request_id is None for e in released)
    retry = await claims_service.create_claim(store, agent.id, [e.id for e in earnings], BANK)
    assert retry.id != claim.id


async def test_settled_claim_cannot_be_settled_again(store, mailer, agent, user, admin):
    earning = await earn(store, agent, user, "5000")
    claim = await claims_service.create_claim(store, agent.id, [earning.id], BANK)
    await claims_service.approve_claim(store, mailer, claim.id, admin.id)
    with pytest.raises(ConflictError):
        await claims_service.reject_claim(store, claim.id, admin.id)
    with pytest.raises(NotFoundError):
        await claims_service.approve_claim(store, mailer, "no-such-claim", admin.id)


async def test_claim_below_minimum_rejected(store, agent, user):
    earning = await earn(store, agent, user, "4999.99")
    with pytest.raises(BadRequestError) as exc:
        await claims_service.create_claim(store, agent.id, [earning.id], BANK)
    assert exc.value.details["minimum_lkr"] == "5000"


async def test_claim_requires_payout_details(store, agent, user):
    earning = await earn(store, agent, user, "8000")
    with pytest.raises(BadRequestError):
        await claims_service.create_claim(store, agent.id, [earning.id], BankDetails(bank="Sampath"))
    claim = await claims_service.create_claim(store, agent.id, [earning.id], BankDetails(binance_id="77881234"))
    assert claim.bank_details.binance_id == "77881234"


async def test_claim_ids_deduplicated_and_required(store, agent, user):
    earning = await earn(store, agent, user, "5000")
    with pytest.raises(BadRequestError):
        await claims_service.create_claim(store, agent.id, [], BANK)
    claim = await claims_service.create_claim(store, agent.id, [earning.id, earning.id], BANK)
    assert claim.earning_ids == [earning.id]


async def test_approval_survives_email_failure(store, failing_mailer, agent, user, admin):
    earning = await earn(store, agent, user, "5000")
    claim = await claims_service.create_claim(store, agent.id, [earning.id], BANK)
    approved = await claims_service.approve_claim(store, failing_mailer, claim.id, admin.id)
    assert approved.status == ClaimStatus.APPROVED
    assert (await store.get_earnings([earning.id]))[0].status == EarningStatus.PAID


async def test_record_earning_rejects_non_positive_amount(store, agent, user):
    with pytest.raises(InvalidAmountError):
        await earn(store, agent, user, "0")
