from dataclasses import dataclass
from typing import Any, ClassVar, FrozenSet

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class GatewayKeys:
    """Published/secret API key pair for the active gateway mode."""

    published: str
    secret: str
    live: bool = False

    @property
    def is_complete(self) -> bool:
        return bool(self.published) and bool(self.secret)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./crowdfund.db"

    # Database pool (applies to client/server DBs like Postgres; SQLite uses NullPool)
    DB_POOL_PRE_PING: bool = True
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_POOL_RECYCLE_SECONDS: int = 1800

    # Applied for Postgres connections only.
    # Reconciliation needs at least READ COMMITTED plus row locks on transactions.
    DB_POSTGRES_ISOLATION_LEVEL: str = "READ COMMITTED"

    # Redis (optional; only used for the checkout double-submit lock)
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_ENABLED: bool = False

    # Application
    LOG_LEVEL: str = "INFO"
    DEBUG: bool = False

    # Environment
    # Used for guardrails. Suggested values: dev|staging|prod.
    ENV: str = "dev"

    # Public site URL used to build redirect targets after checkout.
    SITE_BASE_URL: str = "http://localhost:8000"

    # Currency every project is funded in (ISO 4217).
    PROJECT_CURRENCY: str = "USD"

    # Stripe
    STRIPE_TEST_MODE: bool = True
    STRIPE_TEST_PUBLISHED_KEY: str = ""
    STRIPE_TEST_SECRET_KEY: str = ""
    STRIPE_PUBLISHED_KEY: str = ""
    STRIPE_SECRET_KEY: str = ""
    # Outbound charge call budget; exceeding it is a recoverable gateway outage.
    STRIPE_TIMEOUT_SECONDS: float = 10.0

    # Checkout double-submit lock (Redis)
    CHECKOUT_LOCK_TTL_SECONDS: int = 30
    CHECKOUT_LOCK_WAIT_SECONDS: float = 0.0

    # Reconciliation retry configuration.
    # Covers lost races on transactions.txn_id and Postgres serialization failures/deadlocks.
    COMMIT_RETRY_ATTEMPTS: int = 3
    COMMIT_RETRY_BASE_DELAY_MS: int = 50
    # Cap the exponential backoff to avoid unbounded latency.
    COMMIT_RETRY_MAX_DELAY_MS: int = 500

    # Observability
    METRICS_ENABLED: bool = True

    # --- Guardrails ---
    _SAFE_ENVS: ClassVar[FrozenSet[str]] = frozenset({"dev", "development", "test", "testing"})

    def model_post_init(self, __context: Any) -> None:
        # Runs on every Settings() instantiation (including module-level `settings = Settings()`).
        self._guardrail_live_keys()

    def _guardrail_live_keys(self) -> None:
        env = (self.ENV or "").strip().lower()
        if env in self._SAFE_ENVS:
            return
        if self.STRIPE_TEST_MODE:
            return

        problems: list[str] = []
        if not (self.STRIPE_PUBLISHED_KEY or "").strip():
            problems.append("STRIPE_PUBLISHED_KEY")
        if not (self.STRIPE_SECRET_KEY or "").strip():
            problems.append("STRIPE_SECRET_KEY")

        if problems:
            fields = ", ".join(problems)
            raise RuntimeError(
                "Refusing to start in live payment mode without gateway keys: "
                f"{fields}. "
                f"Got ENV={self.ENV!r}. "
                "Set them via environment variables or enable STRIPE_TEST_MODE."
            )

    def gateway_keys(self) -> GatewayKeys:
        """Return the trimmed key pair for the active (test or live) mode."""
        if self.STRIPE_TEST_MODE:
            return GatewayKeys(
                published=(self.STRIPE_TEST_PUBLISHED_KEY or "").strip(),
                secret=(self.STRIPE_TEST_SECRET_KEY or "").strip(),
            )
        return GatewayKeys(
            published=(self.STRIPE_PUBLISHED_KEY or "").strip(),
            secret=(self.STRIPE_SECRET_KEY or "").strip(),
            live=True,
        )


settings = Settings()


def get_settings() -> Settings:
    """Return the global settings instance.

    Provided as a callable for FastAPI Depends() and test mocking convenience.
    """
    return settings
