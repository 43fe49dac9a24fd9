from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from holidaysri.core.enums import PaymentMethod, TokenKind
from holidaysri.core.pagination import page_of, paginate
from holidaysri.deps import get_current_user, store_dep
from holidaysri.schemas import UserAccount
from holidaysri.services import ledger as ledger_service
from holidaysri.services import pricing
from holidaysri.storage.base import Store

router = APIRouter()


class PurchaseBody(BaseModel):
    token: TokenKind
    amount: int | None = Field(None, description="Whole tokens to buy")
    amount_lkr: Decimal | None = Field(None, description="LKR paid; buys as many whole tokens as it covers")
    payment_method: PaymentMethod = PaymentMethod.CARD
    payment_transaction_id: str | None = None


class SpendBody(BaseModel):
    token: TokenKind
    amount: int
    description: str = Field(..., min_length=1, max_length=500)
    related_entity_type: str | None = None
    related_entity_id: str | None = None


@router.get("/balances")
async def token_balances(user: UserAccount = Depends(get_current_user), store: Store = Depends(store_dep)):
    """Current HSC, HSG and HSD balances."""
    balances = await ledger_service.get_balances(store, user.id)
    return {"balances": balances, "pricing_lkr": pricing.get_pricing()}


@router.get("/transactions")
async def token_transactions(
    user: UserAccount = Depends(get_current_user),
    store: Store = Depends(store_dep),
    token: TokenKind | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Transaction history, newest first."""
    limit, offset = paginate(limit, offset)
    entries = await ledger_service.list_transactions(store, user.id, token, limit=limit, offset=offset)
    return page_of(entries, limit, offset)


@router.get("/audit/{token}")
async def token_audit(token: TokenKind, user: UserAccount = Depends(get_current_user), store: Store = Depends(store_dep)):
    return await ledger_service.audit_balance(store, user.id, token)


@router.post("/purchase")
async def token_purchase(
    body: PurchaseBody,
    user: UserAccount = Depends(get_current_user),
    store: Store = Depends(store_dep),
):
    if body.amount_lkr is not None:
        result, price = await ledger_service.purchase_tokens_for_lkr(
            store,
            user.id,
            body.token,
            body.amount_lkr,
            payment_method=body.payment_method,
            payment_transaction_id=body.payment_transaction_id,
        )
    else:
        result, price = await ledger_service.purchase_tokens(
            store,
            user.id,
            body.token,
            body.amount,
            payment_method=body.payment_method,
            payment_transaction_id=body.payment_transaction_id,
        )
    return {"balance": result.balance, "price_lkr": str(price), "transaction": result.transaction}


@router.post("/spend")
async def token_spend(
    body: SpendBody,
    user: UserAccount = Depends(get_current_user),
    store: Store = Depends(store_dep),
):
    result = await ledger_service.spend(
        store,
        user.id,
        body.token,
        body.amount,
        body.description,
        related_entity_type=body.related_entity_type,
        related_entity_id=body.related_entity_id,
    )
    return {"balance": result.balance, "transaction": result.transaction}
