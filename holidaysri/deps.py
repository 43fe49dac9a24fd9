"""Shared FastAPI dependencies."""

from fastapi import Depends, Request

from holidaysri.core.exceptions import ForbiddenError, UnauthorizedError
from holidaysri.core.security import load_session_cookie
from holidaysri.schemas import UserAccount
from holidaysri.services.mailer import Mailer, get_mailer
from holidaysri.storage.base import Store, get_store

SESSION_COOKIE_NAME = "holidaysri_session"


def store_dep() -> Store:
    return get_store()


def mailer_dep() -> Mailer:
    return get_mailer()


async def get_current_user(request: Request, store: Store = Depends(store_dep)) -> UserAccount:
    """Dependency: load session from cookie and return the user."""
    cookie = request.cookies.get(SESSION_COOKIE_NAME)
    if not cookie:
        raise UnauthorizedError("Not authenticated")
    payload = load_session_cookie(cookie)
    if not payload:
        raise UnauthorizedError("Invalid or expired session")
    user_id = payload.get("user_id")
    if not user_id:
        raise UnauthorizedError("Invalid session")
    user = await store.get_user(user_id)
    if not user:
        raise UnauthorizedError("User not found")
    if payload.get("session_version", 0) != user.session_version:
        raise UnauthorizedError("Session invalidated")
    return user


async def require_admin(user: UserAccount = Depends(get_current_user)) -> UserAccount:
    """Dependency: require current user to have role admin."""
    if user.role != "admin":
        raise ForbiddenError("Admin only")
    return user
