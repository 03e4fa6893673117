from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    POSTGRES_USER: str
    POSTGRES_PASSWORD: str
    POSTGRES_DB: str
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432

    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 20
    DB_POOL_RECYCLE: int = 300
    # Bounds waits on another transaction's uncommitted idempotency key.
    DB_LOCK_TIMEOUT_MS: int = 5000

    REDIS_URL: str = "redis://localhost:6379/0"
    DELIVERY_WAKEUP_CHANNEL: str = "newsletter.delivery"

    JWT_SECRET: str = ""
    JWT_ALGORITHM: str = "HS256"

    CORS_ORIGINS: list[str] = ["*"]

    # How long a duplicate request waits for the original one to finalize
    # before giving up with 409.
    IDEMPOTENCY_POLL_TIMEOUT_SECONDS: float = 10.0
    IDEMPOTENCY_POLL_INITIAL_DELAY_SECONDS: float = 0.05
    IDEMPOTENCY_POLL_MAX_DELAY_SECONDS: float = 1.0

    DELIVERY_POLL_INTERVAL: float = 1.0
    DELIVERY_BATCH_SIZE: int = 20
    DELIVERY_MAX_ATTEMPTS: int = 5
    DELIVERY_ATTEMPT_TIMEOUT_SECONDS: float = 10.0
    DELIVERY_BACKOFF_BASE_SECONDS: float = 5.0
    DELIVERY_BACKOFF_MAX_SECONDS: float = 3600.0

    EMAIL_API_BASE_URL: str = "http://localhost:8025"
    EMAIL_SENDER: str = "newsletter@example.com"
    EMAIL_AUTH_TOKEN: str = ""
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    @property
    def database_url(self) -> str:
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.POSTGRES_DB}"
        )

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()  # type: ignore[call-arg]
