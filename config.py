from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ENV(BaseSettings):
    model_config = SettingsConfigDict(validate_default=True, env_file=".env", env_file_encoding="utf-8", extra="ignore")

    DEBUG: bool = False

    POSTGRES_HOST: str
    POSTGRES_PORT: str = "5432"
    POSTGRES_NAME: str
    POSTGRES_USER: str
    POSTGRES_PASS: str
    # full SQLAlchemy URL, overrides the POSTGRES_* parts when set
    DATABASE_URL: Optional[str] = None

    JWT_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 720

    redis_url: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/2"
    CELERY_TIMEZONE: str = "Asia/Kolkata"

    BASE_URL: str = "http://localhost:8000"

    # pricing
    GST_RATE: Decimal = Decimal("18")
    ADMIN_COMMISSION_PER_REVIEW: Decimal = Decimal("50")
    MAX_REVIEWS_PER_REQUEST: int = 100

    # tax invoice identity of the platform
    PLATFORM_GST_NUMBER: str = ""
    PLATFORM_LEGAL_NAME: str = "ReviewFlow"
    PLATFORM_ADDRESS: str = ""
    PLATFORM_STATE_CODE: str = ""
    GST_SAC_CODE: str = "998371"

    # gateways, comma separated in order of preference
    PAYMENT_GATEWAYS: str = "razorpay,payu"
    PAYMENT_DEMO_MODE: bool = False
    RAZORPAY_KEY_ID: str = ""
    RAZORPAY_KEY_SECRET: str = ""
    RAZORPAY_ACCOUNT_NUMBER: str = ""
    PAYU_MERCHANT_KEY: str = ""
    PAYU_MERCHANT_SALT: str = ""
    PAYU_BASE_URL: str = "https://secure.payu.in/_payment"

    # task lifecycle
    AUTO_APPROVE_PROOFS: bool = True
    LEGACY_LINK_MATCHING: bool = True

    # queue worker
    QUEUE_MAX_JOBS: int = 10
    QUEUE_TIME_LIMIT_SECONDS: int = 300
    QUEUE_JOB_RETENTION_DAYS: int = 30
    QUEUE_STOP_ON_ERROR: bool = False

    # wallet limits, rupees
    MIN_WITHDRAWAL: Decimal = Decimal("100")
    MIN_RECHARGE: Decimal = Decimal("100")
    MAX_RECHARGE: Decimal = Decimal("100000")

    SITEMAP_CACHE_TTL: int = 3600


class Settings():
    def __init__(self, env: ENV | None = None):
        self.env = env or get_env()

    def generate_postgres_url(self) -> str:
        if self.env.DATABASE_URL:
            return self.env.DATABASE_URL
        return f"postgresql+asyncpg://{self.env.POSTGRES_USER}:{self.env.POSTGRES_PASS}@{self.env.POSTGRES_HOST}:{self.env.POSTGRES_PORT}/{self.env.POSTGRES_NAME}"

    def enabled_gateways(self) -> list[str]:
        return [code.strip() for code in self.env.PAYMENT_GATEWAYS.split(",") if code.strip()]


@lru_cache
def get_env() -> ENV:
    return ENV()
