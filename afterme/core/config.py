"""Application configuration with environment variables."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Environment
    ENV: str = "dev"

    # App Version (format: a.bc.de - major.feature.patch)
    VERSION: str = "0.01.00"

    # Proxy/Load Balancer Settings
    # Set to True when running behind nginx/Cloudflare to trust X-Forwarded-For
    TRUST_PROXY_HEADERS: bool = False

    # Database
    DATABASE_URL: str = "sqlite+pysqlite:///./afterme.db"

    # Session Token (supports key rotation)
    JWT_SECRET: str = "change-this-in-production"
    JWT_SECRET_PREVIOUS: str = ""  # Set during rotation, clear after
    JWT_EXPIRES_HOURS: int = 4

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend (links in emails point here)
    FRONTEND_URL: str = "http://localhost:3000"

    # Internal scheduled endpoints (cron jobs, manual review)
    INTERNAL_SECRET: str = ""

    # Error Tracking (optional, set in production)
    SENTRY_DSN: str = ""

    # Outbound email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM: str = "AfterMe <noreply@afterme.app>"

    # Legacy access workflow
    LEGACY_GRACE_PERIOD_DAYS: int = 7
    LEGACY_ACCESS_DURATION_DAYS: int = 30
    # Upper bounds on per-owner overrides of the two durations above
    LEGACY_MAX_GRACE_PERIOD_DAYS: int = 365
    LEGACY_MAX_ACCESS_DURATION_DAYS: int = 3650
    # "majority": floor(n/2)+1 confirmations. "half": ceil(n/2), at least 1.
    # With two trustees, "majority" needs both to confirm, so a single denial
    # rejects. Use "half" for one denial out of two to stay under_review.
    LEGACY_QUORUM_RULE: str = "majority"

    # External vault content system (optional)
    VAULT_CONTENT_URL: str = ""
    VAULT_CONTENT_API_KEY: str = ""
    VAULT_CONTENT_TIMEOUT_SECONDS: float = 10.0

    # Worker: run the grace period / expiry sweep every N seconds (0 disables)
    WORKER_SWEEP_INTERVAL_SECONDS: int = 300
    WORKER_POLL_INTERVAL_SECONDS: float = 5.0
    WORKER_BATCH_SIZE: int = 10

    # Rate Limiting (requests per minute)
    RATE_LIMIT_SUBMIT: int = 5  # New legacy access requests
    RATE_LIMIT_TOKEN: int = 20  # Token-bearing links (confirm, content)
    RATE_LIMIT_API: int = 60  # General API

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS_ORIGINS into a list."""
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def jwt_secrets(self) -> list[str]:
        """Returns list of valid secrets (current first, then previous if set)."""
        secrets = [self.JWT_SECRET]
        if self.JWT_SECRET_PREVIOUS:
            secrets.append(self.JWT_SECRET_PREVIOUS)
        return secrets


settings = Settings()
