from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from holidaysri.core.enums import EarningStatus
from holidaysri.deps import get_current_user, store_dep
from holidaysri.schemas import BankDetails, UserAccount
from holidaysri.services import claims as claims_service
from holidaysri.storage.base import Store

router = APIRouter()


class ClaimBody(BaseModel):
    earning_ids: list[str] = Field(..., min_length=1)
    bank_details: BankDetails | None = None


@router.get("")
async def earnings_list(
    status: EarningStatus | None = None,
    user: UserAccount = Depends(get_current_user),
    store: Store = Depends(store_dep),
):
    """Earnings from the user's promo codes, newest first."""
    earnings = await claims_service.list_earnings(store, user.id, status)
    claimable = sum(
        (e.amount_lkr for e in earnings if e.status == EarningStatus.PENDING and not e.claim_request_id),
        Decimal("0"),
    )
    return {"earnings": earnings, "claimable_lkr": str(claimable)}


@router.post("/claims")
async def earnings_claim(
    body: ClaimBody,
    user: UserAccount = Depends(get_current_user),
    store: Store = Depends(store_dep),
):
    """Request payout of selected pending earnings."""
    return await claims_service.create_claim(store, user.id, body.earning_ids, body.bank_details)
