from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from holidaysri.core.security import SESSION_MAX_AGE, create_session_cookie
from holidaysri.deps import SESSION_COOKIE_NAME, get_current_user, store_dep
from holidaysri.schemas import UserAccount
from holidaysri.services import users as user_service
from holidaysri.storage.base import Store

router = APIRouter()


class RegisterBody(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)
    name: str = Field("", max_length=200)


def _account(user: UserAccount) -> dict:
    return {
        "id": user.id,
        "email": user.email,
        "name": user.name,
        "role": user.role,
        "balances": {"HSC": user.hsc_balance, "HSG": user.hsg_balance, "HSD": user.hsd_balance},
    }


@router.post("/register")
async def auth_register(body: RegisterBody, response: Response, store: Store = Depends(store_dep)):
    """Create the account with its welcome gift and start a session; set httpOnly cookie."""
    user = await user_service.register_user(store, body.email, name=body.name)
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=create_session_cookie(user_service.session_payload_for_user(user)),
        max_age=SESSION_MAX_AGE,
        httponly=True,
        secure=False,  # set True in prod with HTTPS
        samesite="lax",
        path="/",
    )
    return {"user": _account(user)}


@router.get("/me")
async def auth_me(user: UserAccount = Depends(get_current_user)):
    """Return current user. Requires session cookie."""
    return _account(user)


@router.post("/logout")
async def auth_logout(response: Response):
    response.delete_cookie(SESSION_COOKIE_NAME, path="/")
    return {"ok": True}
