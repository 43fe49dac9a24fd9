from enum import Enum

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from holidaysri.core.config import get_settings
from holidaysri.core.enums import ClaimStatus, ExpirableKind, TokenKind
from holidaysri.core.pagination import page_of, paginate
from holidaysri.deps import mailer_dep, require_admin, store_dep
from holidaysri.schemas import UserAccount
from holidaysri.services import claims as claims_service
from holidaysri.services import ledger as ledger_service
from holidaysri.services.expiration import build_sweepers
from holidaysri.services.mailer import Mailer
from holidaysri.storage.base import Store

router = APIRouter()


class SweepAction(str, Enum):
    WARNINGS = "warnings"
    EXPIRE = "expire"
    STARTUP = "startup"


class SettleBody(BaseModel):
    note: str | None = Field(default=None, max_length=1000)


class DistributeBody(BaseModel):
    user_ids: list[str] = Field(..., min_length=1)
    token: TokenKind
    amount: int
    description: str = Field(default="Admin token distribution", max_length=500)


@router.get("/claims")
async def admin_claims(
    status: ClaimStatus | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: UserAccount = Depends(require_admin),
    store: Store = Depends(store_dep),
):
    limit, offset = paginate(limit, offset)
    claims = await claims_service.list_claims(store, status, limit=limit, offset=offset)
    return page_of(claims, limit, offset)


@router.post("/claims/{claim_id}/approve")
async def admin_claim_approve(
    claim_id: str,
    body: SettleBody | None = None,
    admin: UserAccount = Depends(require_admin),
    store: Store = Depends(store_dep),
    mailer: Mailer = Depends(mailer_dep),
):
    """Admin: approve a pending claim; its earnings are marked paid."""
    return await claims_service.approve_claim(store, mailer, claim_id, admin.id, body.note if body else None)


@router.post("/claims/{claim_id}/reject")
async def admin_claim_reject(
    claim_id: str,
    body: SettleBody | None = None,
    admin: UserAccount = Depends(require_admin),
    store: Store = Depends(store_dep),
):
    """Admin: reject a pending claim; its earnings become claimable again."""
    return await claims_service.reject_claim(store, claim_id, admin.id, body.note if body else None)


@router.post("/tokens/distribute")
async def admin_tokens_distribute(
    body: DistributeBody,
    admin: UserAccount = Depends(require_admin),
    store: Store = Depends(store_dep),
):
    return await ledger_service.distribute_tokens(
        store, body.user_ids, body.token, body.amount, body.description, admin_id=admin.id
    )


@router.post("/sweeps/{kind}/{action}")
async def admin_run_sweep(
    kind: ExpirableKind,
    action: SweepAction,
    admin: UserAccount = Depends(require_admin),
    store: Store = Depends(store_dep),
    mailer: Mailer = Depends(mailer_dep),
):
    """Admin: run one sweep now, outside the cron schedule."""
    sweeper = build_sweepers(store, mailer, get_settings())[kind]
    if action is SweepAction.WARNINGS:
        return await sweeper.send_warnings()
    if action is SweepAction.EXPIRE:
        return await sweeper.expire_due()
    return {"results": await sweeper.run_startup()}
