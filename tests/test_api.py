"""HTTP surface through httpx against the in-memory store."""

from datetime import timedelta
from decimal import Decimal

import pytest

from holidaysri.core.clock import utcnow
from holidaysri.core.enums import ExpirableKind
from holidaysri.services import claims as claims_service

pytestmark = pytest.mark.asyncio


async def test_requires_session(client):
    r = await client.get("/v1/tokens/balances")
    assert r.status_code == 401
    body = r.json()
    assert body["error"]["code"] == "UNAUTHORIZED"
    assert "request_id" in body


async def test_tampered_session_rejected(client):
    from holidaysri.deps import SESSION_COOKIE_NAME
    client.cookies.set(SESSION_COOKIE_NAME, "not-a-signed-cookie")
    r = await client.get("/v1/tokens/balances")
    assert r.status_code == 401


async def test_purchase_then_spend(client, login, user):
    login(client, user)
    r = await client.post("/v1/tokens/purchase", json={"token": "HSC", "amount": 10})
    assert r.status_code == 200
    body = r.json()
    assert body["balance"] == 10
    assert body["price_lkr"] == "1000.00"
    assert body["transaction"]["type"] == "purchase"

    r = await client.post(
        "/v1/tokens/spend",
        json={"token": "HSC", "amount": 4, "description": "Home banner slot", "related_entity_type": "advertisement"},
    )
    assert r.status_code == 200
    assert r.json()["balance"] == 6

    r = await client.get("/v1/tokens/balances")
    assert r.json()["balances"] == {"HSC": 6, "HSG": 0, "HSD": 0}

    r = await client.get("/v1/tokens/transactions", params={"token": "HSC"})
    page = r.json()
    assert [t["type"] for t in page["items"]] == ["spend", "purchase"]
    assert page["limit"] == 50

    r = await client.get("/v1/tokens/audit/HSC")
    assert r.json()["consistent"] is True


async def test_spend_beyond_balance_is_400(client, login, user):
    login(client, user)
    r = await client.post("/v1/tokens/spend", json={"token": "HSG", "amount": 3, "description": "Boost"})
    assert r.status_code == 400
    error = r.json()["error"]
    assert error["code"] == "INSUFFICIENT_BALANCE"
    assert error["details"] == {"token": "HSG", "required": 3, "available": 0}


async def test_invalid_amount_is_400(client, login, user):
    login(client, user)
    r = await client.post("/v1/tokens/purchase", json={"token": "HSD", "amount": 0})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_AMOUNT"


async def test_admin_routes_forbidden_for_users(client, login, user):
    login(client, user)
    r = await client.get("/v1/admin/claims")
    assert r.status_code == 403


async def test_claim_round_trip_through_admin(client, login, store, mailer, user, admin):
    agent = await store.insert_user("agent@example.com", name="Agent")
    ids = [
        (await claims_service.record_earning(store, agent.id, user.id, Decimal("3000"), "SUN", "Gold code", "promo_code")).id
        for _ in range(2)
    ]

    login(client, agent)
    r = await client.get("/v1/earnings")
    assert r.json()["claimable_lkr"] == "6000.00"
    r = await client.post(
        "/v1/earnings/claims",
        json={"earning_ids": ids, "bank_details": {"binance_id": "55501234"}},
    )
    assert r.status_code == 200
    claim_id = r.json()["id"]

    login(client, admin)
    r = await client.get("/v1/admin/claims", params={"status": "pending"})
    assert [c["id"] for c in r.json()["items"]] == [claim_id]
    r = await client.post(f"/v1/admin/claims/{claim_id}/approve", json={"note": "Paid"})
    assert r.status_code == 200
    assert r.json()["status"] == "approved"
    r = await client.post(f"/v1/admin/claims/{claim_id}/reject", json={})
    assert r.status_code == 409

    login(client, agent)
    r = await client.get("/v1/earnings", params={"status": "paid"})
    assert len(r.json()["earnings"]) == 2
    assert len(mailer.sent) == 1


async def test_admin_distribute_and_sweep(client, login, store, user, admin):
    await store.insert_expirable(
        ExpirableKind.PROMO_CODE, owner_id=user.id, expires_at=utcnow() - timedelta(hours=1), label="SUN"
    )
    login(client, admin)
    r = await client.post(
        "/v1/admin/tokens/distribute",
        json={"user_ids": [user.id, "ghost"], "token": "HSD", "amount": 5},
    )
    body = r.json()
    assert body["credited"] == [user.id]
    assert body["failed"][0]["user_id"] == "ghost"

    r = await client.post("/v1/admin/sweeps/promo_code/expire")
    assert r.status_code == 200
    result = r.json()
    assert (result["sweep"], result["success"], result["processed"]) == ("promo_code_expire", True, 1)

    r = await client.post("/v1/admin/sweeps/promo_code/bogus")
    assert r.status_code == 422


async def test_register_starts_session_with_welcome_gift(client):
    r = await client.post("/v1/auth/register", json={"email": "New.Guest@Example.com", "name": "Guest"})
    assert r.status_code == 200
    account = r.json()["user"]
    assert account["email"] == "new.guest@example.com"
    assert account["balances"]["HSG"] == 100

    r = await client.get("/v1/auth/me")
    assert r.status_code == 200
    assert r.json()["id"] == account["id"]
    r = await client.get("/v1/tokens/transactions", params={"token": "HSG"})
    assert [t["type"] for t in r.json()["items"]] == ["gift"]

    r = await client.post("/v1/auth/register", json={"email": "new.guest@example.com"})
    assert r.status_code == 409

    await client.post("/v1/auth/logout")
    r = await client.get("/v1/auth/me")
    assert r.status_code == 401


async def test_purchase_by_lkr_credits_whole_tokens(client, login, user):
    login(client, user)
    r = await client.post("/v1/tokens/purchase", json={"token": "HSC", "amount_lkr": "450"})
    assert r.status_code == 200
    body = r.json()
    assert body["balance"] == 4
    assert body["price_lkr"] == "400.00"

    r = await client.post("/v1/tokens/purchase", json={"token": "HSC", "amount_lkr": "99.99"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "INVALID_AMOUNT"


async def test_store_outage_is_503(client, login, store, user):
    from holidaysri.core.exceptions import TransientStoreError

    async def unavailable(user_id):
        raise TransientStoreError("Document store error: no primary available")

    login(client, user)
    store.get_user = unavailable
    r = await client.get("/v1/tokens/balances")
    assert r.status_code == 503
    assert r.json()["error"]["code"] == "STORE_UNAVAILABLE"
