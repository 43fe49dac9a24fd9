import asyncio
import os
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-memory store and log mailer; no MongoDB, Redis or SMTP needed
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("EMAIL_BACKEND", "log")
os.environ.setdefault("SECRET_KEY", "test-secret-key-min-32-characters-long")

from holidaysri.core.exceptions import NotificationDeliveryError  # noqa: E402
from holidaysri.services.mailer import Mailer  # noqa: E402
from holidaysri.storage.memory import MemoryStore  # noqa: E402


class RecordingMailer(Mailer):
    def __init__(self, fail: bool = False, delay: float = 0.0) -> None:
        self.fail = fail
        self.delay = delay
        self.sent: list[tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise NotificationDeliveryError("SMTP unavailable", details={"to": to})
        self.sent.append((to, subject, body))


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest_asyncio.fixture
async def user(store: MemoryStore):
    return await store.insert_user("traveller@example.com", name="Traveller")


@pytest_asyncio.fixture
async def admin(store: MemoryStore):
    return await store.insert_user("admin@holidaysri.com", name="Admin", role="admin")


@pytest_asyncio.fixture
async def client(store: MemoryStore, mailer: RecordingMailer) -> AsyncGenerator[AsyncClient, None]:
    from holidaysri.deps import mailer_dep, store_dep
    from holidaysri.main import app
    app.dependency_overrides[store_dep] = lambda: store
    app.dependency_overrides[mailer_dep] = lambda: mailer
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def failing_mailer() -> RecordingMailer:
    return RecordingMailer(fail=True)


@pytest.fixture
def slow_mailer() -> RecordingMailer:
    return RecordingMailer(delay=1.0)


@pytest.fixture
def login():
    """Attach a signed session cookie for the account to the client."""
    from holidaysri.core.security import create_session_cookie
    from holidaysri.deps import SESSION_COOKIE_NAME
    from holidaysri.services.users import session_payload_for_user

    def _login(client: AsyncClient, account) -> None:
        client.cookies.set(SESSION_COOKIE_NAME, create_session_cookie(session_payload_for_user(account)))

    return _login
