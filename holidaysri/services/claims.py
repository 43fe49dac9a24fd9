"""Promo-code earnings and the claim requests that pay them out."""

import asyncio
from decimal import Decimal

from holidaysri.core.clock import Clock, utcnow
from holidaysri.core.config import get_settings
from holidaysri.core.enums import ClaimStatus, EarningStatus, NotificationPriority, NotificationSeverity
from holidaysri.core.exceptions import BadRequestError, ConflictError, InvalidAmountError, NotFoundError
from holidaysri.core.logging import get_logger
from holidaysri.core.pagination import paginate
from holidaysri.schemas import BankDetails, ClaimRecord, EarningRecord
from holidaysri.services.mailer import Mailer, send_with_timeout
from holidaysri.services.notifications import notify
from holidaysri.storage.base import Store

log = get_logger(__name__)

CENTS = Decimal("0.01")


async def record_earning(
    store: Store,
    owner_id: str,
    buyer_id: str,
    amount_lkr: Decimal,
    promo_code: str,
    item: str,
    item_type: str,
    category: str = "Promo Codes",
) -> EarningRecord:
    """Book what a promo-code owner earned from one purchase. Starts pending."""
    amount = Decimal(amount_lkr).quantize(CENTS)
    if amount <= 0:
        raise InvalidAmountError("Earning amount must be positive", details={"amount_lkr": str(amount_lkr)})
    owner = await store.get_user(owner_id)
    buyer = await store.get_user(buyer_id)
    if not owner or not buyer:
        raise NotFoundError("User not found")
    earning = await store.insert_earning(
        owner_id=owner.id,
        owner_email=owner.email,
        buyer_id=buyer.id,
        buyer_email=buyer.email,
        amount_lkr=amount,
        promo_code=promo_code.strip().upper(),
        item=item,
        item_type=item_type,
        category=category,
    )
    log.info("earning_recorded", earning_id=earning.id, owner_id=owner.id, amount_lkr=str(amount), promo_code=promo_code)
    return earning


async def list_earnings(store: Store, owner_id: str, status: EarningStatus | None = None) -> list[EarningRecord]:
    return await store.list_earnings(owner_id, status)


async def create_claim(
    store: Store,
    user_id: str,
    earning_ids: list[str],
    bank_details: BankDetails | None = None,
) -> ClaimRecord:
    """
    Reserve a set of the user's pending earnings for payout.
    The reservation is atomic in the store; losing a race to another claim raises ConflictError.
    """
    user = await store.get_user(user_id)
    if not user:
        raise NotFoundError("User not found")
    ids = list(dict.fromkeys(i for i in earning_ids if i))
    if not ids:
        raise BadRequestError("Select at least one earning to claim")

    earnings = await store.get_earnings(ids)
    if len(earnings) != len(ids) or any(e.owner_id != user.id for e in earnings):
        raise BadRequestError("Some selected earnings are invalid")
    if any(e.status != EarningStatus.PENDING or e.claim_request_id for e in earnings):
        raise ConflictError("Some selected earnings are already claimed")

    total = sum((e.amount_lkr for e in earnings), Decimal("0")).quantize(CENTS)
    minimum = get_settings().min_claim_amount_lkr
    if total < minimum:
        raise BadRequestError(
            f"Minimum claim amount is {minimum} LKR",
            details={"total_amount_lkr": str(total), "minimum_lkr": str(minimum)},
        )

    payout = bank_details or user.bank_details
    if not payout.is_payable():
        raise BadRequestError("Complete bank details or a Binance ID are required to claim earnings")

    claim = await store.create_claim(
        owner_id=user.id,
        owner_email=user.email,
        earning_ids=ids,
        total_amount_lkr=total,
        bank_details=payout,
    )
    await store.log_event(
        user.id,
        "claim_requested",
        "claim_request",
        claim.id,
        {"earnings": len(ids), "total_amount_lkr": str(total)},
    )
    log.info("claim_created", claim_id=claim.id, user_id=user.id, earnings=len(ids), total_amount_lkr=str(total))
    return claim


async def list_claims(
    store: Store,
    status: ClaimStatus | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[ClaimRecord]:
    limit, offset = paginate(limit, offset)
    return await store.list_claims(status, limit=limit, offset=offset)


async def approve_claim(
    store: Store,
    mailer: Mailer,
    claim_id: str,
    admin_id: str,
    note: str | None = None,
    clock: Clock = utcnow,
) -> ClaimRecord:
    """Mark every reserved earning paid and notify the owner. Delivery failures are logged only."""
    claim = await store.settle_claim(claim_id, ClaimStatus.APPROVED, admin=admin_id, note=note, now=clock())
    await store.log_event(
        admin_id,
        "claim_approved",
        "claim_request",
        claim.id,
        {"owner_id": claim.owner_id, "total_amount_lkr": str(claim.total_amount_lkr)},
    )
    log.info("claim_approved", claim_id=claim.id, admin_id=admin_id, total_amount_lkr=str(claim.total_amount_lkr))

    message = (
        f"Your claim of {claim.total_amount_lkr} LKR for {len(claim.earning_ids)} earnings "
        "has been approved and paid."
    )
    outcomes = await asyncio.gather(
        notify(
            store,
            claim.owner_id,
            "Earnings Claim Approved",
            message,
            severity=NotificationSeverity.EARNING,
            priority=NotificationPriority.HIGH,
            data={"claim_id": claim.id, "total_amount_lkr": str(claim.total_amount_lkr)},
        ),
        send_with_timeout(
            mailer,
            claim.owner_email,
            "Your earnings claim has been approved - Holidaysri Tourism",
            f"Hello,\n\n{message}\n\nThank you,\nHolidaysri Tourism",
        ),
        return_exceptions=True,
    )
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            log.warning("claim_notification_failed", claim_id=claim.id, error=str(outcome))
    return claim


async def reject_claim(
    store: Store,
    claim_id: str,
    admin_id: str,
    note: str | None = None,
    clock: Clock = utcnow,
) -> ClaimRecord:
    """Reject a pending claim; its earnings stay pending and become claimable again."""
    claim = await store.settle_claim(claim_id, ClaimStatus.REJECTED, admin=admin_id, note=note, now=clock())
    await store.log_event(admin_id, "claim_rejected", "claim_request", claim.id, {"note": note})
    log.info("claim_rejected", claim_id=claim.id, admin_id=admin_id)
    return claim
