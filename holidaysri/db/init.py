import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from holidaysri.core.config import get_settings
from holidaysri.models.advertisement import Advertisement
from holidaysri.models.audit_log import AuditLog
from holidaysri.models.claim_request import ClaimRequest
from holidaysri.models.commercial_partner import CommercialPartner
from holidaysri.models.earning import Earning
from holidaysri.models.failed_job import FailedJob
from holidaysri.models.membership import Membership
from holidaysri.models.notification import Notification
from holidaysri.models.promo_code import PromoCode
from holidaysri.models.token_transaction import TokenTransaction
from holidaysri.models.user import User

DOCUMENT_MODELS = [
    User,
    TokenTransaction,
    Advertisement,
    Membership,
    CommercialPartner,
    PromoCode,
    Notification,
    Earning,
    ClaimRequest,
    AuditLog,
    FailedJob,
]

_client: AsyncIOMotorClient | None = None


def _use_tls(uri: str) -> bool:
    """True if URI uses TLS (Atlas or explicit tls=true). Avoids TLS for plain mongodb:// in CI."""
    return "mongodb+srv://" in uri or "tls=true" in uri.lower()


def get_client() -> AsyncIOMotorClient:
    if _client is None:
        raise RuntimeError("init_db() has not been awaited")
    return _client


async def init_db() -> AsyncIOMotorClient:
    """Connect once per process; later calls reuse the client."""
    global _client
    if _client is not None:
        return _client
    settings = get_settings()
    # Atlas in Docker: tlsCAFile + tlsDisableOCSPEndpointCheck avoid TLSV1_ALERT_INTERNAL_ERROR
    kwargs = {"tz_aware": True}
    if _use_tls(settings.mongodb_uri):
        kwargs["tlsCAFile"] = certifi.where()
        kwargs["tlsDisableOCSPEndpointCheck"] = True
    client = AsyncIOMotorClient(settings.mongodb_uri, **kwargs)
    database = client[settings.mongodb_db_name]
    await init_beanie(database=database, document_models=DOCUMENT_MODELS)
    _client = client
    return client
