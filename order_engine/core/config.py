from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/order_engine.db"

    REDIS_URL: str = "redis://localhost:6379/0"

    SECRET_KEY: str = "change-me"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 1440  # 24 hours

    RATE_LIMIT: int = 100
    RATE_LIMIT_WINDOW: int = 600  # 10 minutes

    IDEMPOTENCY_TTL: int = 300  # 5 minutes

    CATALOG_URL: str = "http://catalog:8000"
    CATALOG_TIMEOUT: int = 5

    WEBHOOK_URL: str = "http://notifications:8000/signals"
    WEBHOOK_TIMEOUT: int = 10
    WEBHOOK_RETRIES: int = 3

    CELERY_BROKER_URL: str = "redis://localhost:6379/1"
    CELERY_BACKEND: str = "redis://localhost:6379/2"

    DEFAULT_DELIVERY_DAYS: int = 7
    DEFAULT_CANCELLATION_POLICY: str = "Standard cancellation policy applies"
    DEFAULT_CURRENCY: str = "USD"

    ORDER_NUMBER_DIGITS: int = 6
    ORDER_NUMBER_MAX_ATTEMPTS: int = 5

    DISPUTE_MIN_DESCRIPTION_LENGTH: int = 20

    API_TITLE: str = "Marketplace Order Engine"
    API_DESCRIPTION: str = "Offer, order, dispute and review lifecycle for a services marketplace"
    API_VERSION: str = "1.0.0"

    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()
