from decimal import Decimal
from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULT_CORS = ["http://localhost:3000", "http://localhost:5173"]


def _parse_cors_origins(v: Any) -> List[str]:
    try:
        if v is None or v == "":
            return _DEFAULT_CORS.copy()
        if isinstance(v, list):
            return [x for x in v if isinstance(x, str) and x.strip()]
        s = str(v).strip()
        if not s:
            return _DEFAULT_CORS.copy()
        if s.startswith("["):
            import json
            out = json.loads(s)
            return [x for x in out if isinstance(x, str) and x.strip()] or _DEFAULT_CORS.copy()
        return [x.strip() for x in s.split(",") if x.strip()] or _DEFAULT_CORS.copy()
    except Exception:
        return _DEFAULT_CORS.copy()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # App
    env: str = Field(default="development", description="ENV")
    debug: bool = Field(default=False, description="DEBUG")
    secret_key: str = Field(default="change-me-in-production-min-32-chars")

    # Storage backend: "mongo" in production, "memory" for single-process dev and tests
    store_backend: str = Field(default="mongo", alias="STORE_BACKEND")

    # MongoDB (transactions need a replica set)
    mongodb_uri: str = Field(default="mongodb://localhost:27017", alias="MONGODB_URI")
    mongodb_db_name: str = Field(default="holidaysri", alias="MONGODB_DB_NAME")

    # Redis (arq worker)
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    # Email
    email_backend: str = Field(default="smtp", alias="EMAIL_BACKEND")
    smtp_host: str = Field(default="smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_user: str = Field(default="", alias="SMTP_USER")
    smtp_password: str = Field(default="", alias="SMTP_PASSWORD")
    smtp_from: str = Field(default="no-reply@holidaysri.com", alias="SMTP_FROM")
    smtp_use_tls: bool = Field(default=True, alias="SMTP_USE_TLS")
    email_timeout_seconds: float = Field(default=30.0, alias="EMAIL_TIMEOUT_SECONDS")

    # Sentry
    sentry_dsn: str | None = Field(default=None, alias="SENTRY_DSN")

    # CORS: env as string, exposed as list
    cors_origins_raw: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma-separated or JSON list",
    )

    @property
    def cors_origins(self) -> List[str]:
        return _parse_cors_origins(getattr(self, "cors_origins_raw", None))

    # Scheduling
    scheduler_timezone: str = Field(default="Asia/Colombo", alias="SCHEDULER_TIMEZONE")
    startup_sweep_delay_seconds: int = Field(default=5, alias="STARTUP_SWEEP_DELAY_SECONDS")

    # Sweeps
    warning_sweep_limit: int = 50
    warning_batch_size: int = 5
    warning_batch_delay_seconds: float = 0.1
    expire_sweep_limit: int = 100
    expire_batch_size: int = 10
    expire_batch_delay_seconds: float = 0.2

    # Token economy (LKR per token)
    hsc_value_lkr: Decimal = Decimal("100")
    hsg_value_lkr: Decimal = Decimal("1")
    hsd_value_lkr: Decimal = Decimal("1")
    welcome_hsg_gift: int = 100

    # Earnings
    min_claim_amount_lkr: Decimal = Decimal("5000")


@lru_cache
def get_settings() -> Settings:
    return Settings()
