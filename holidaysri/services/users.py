from holidaysri.core.enums import NotificationPriority, NotificationSeverity
from holidaysri.core.exceptions import BadRequestError
from holidaysri.core.logging import get_logger
from holidaysri.core.security import session_payload
from holidaysri.schemas import UserAccount
from holidaysri.services import ledger as ledger_service
from holidaysri.services.notifications import notify
from holidaysri.storage.base import Store

log = get_logger(__name__)


async def register_user(store: Store, email: str, name: str = "", role: str = "user") -> UserAccount:
    """Create the account and book the welcome HSG gift through the ledger."""
    email = (email or "").strip().lower()
    if not email:
        raise BadRequestError("Email required")
    user = await store.insert_user(email, name=name, role=role)
    gift = await ledger_service.open_account(store, user.id)
    log.info("user_created", user_id=user.id, email=user.email)
    await store.log_event(user.id, "user_created", "user", user.id, {"email": user.email})
    if gift is not None:
        await notify(
            store,
            user.id,
            "Welcome to Holidaysri!",
            f"You received {gift.transaction.amount} HSG as a welcome gift.",
            severity=NotificationSeverity.WELCOME,
            priority=NotificationPriority.HIGH,
            data={"token": gift.transaction.token_kind.value, "amount": gift.transaction.amount},
        )
    return await store.get_user(user.id) or user


def session_payload_for_user(user: UserAccount) -> dict:
    return session_payload(user.id, user.session_version)
