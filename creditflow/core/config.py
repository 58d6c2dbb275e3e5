"""Application configuration loaded from environment variables.

Settings for database, API, authentication, the Mercado Pago PIX gateway,
account provisioning, the retry policy and the background task worker.
Uses pydantic-settings for validation and .env file support.
"""

from typing import Literal

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Known insecure default password that must not be used in production
# Security: Runtime check in check_production_security() prevents use in production
_INSECURE_DEFAULT_PASSWORD = "creditflow_dev_password"  # nosec B105

# Minimum length for AUTH_SECRET in production (256 bits = 32 bytes)
_MIN_AUTH_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Database
    database_host: str = "localhost"
    database_port: int = 5432
    database_name: str = "creditflow"
    database_user: str = "creditflow_user"
    database_password: str = _INSECURE_DEFAULT_PASSWORD
    # Full async SQLAlchemy URL; takes precedence over the discrete fields
    database_url_override: str = ""

    # API
    # 0.0.0.0 binds to all network interfaces (required for Docker containers)
    api_host: str = "0.0.0.0"  # nosec B104
    api_port: int = 8000

    # CORS (Security)
    allowed_origins: list[str] = ["http://localhost:3000"]

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    log_json: bool = False

    # Authentication
    auth_secret: SecretStr = SecretStr("")
    auth_issuer: str = "creditflow"
    auth_audience: str = "creditflow"
    auth_cookie_name: str = "creditflow.session-token"
    auth_cookie_secure: bool = True
    auth_cookie_samesite: Literal["lax", "strict", "none"] = "lax"
    auth_cookie_domain: str = ""

    # Payments (Mercado Pago PIX)
    payment_gateway: Literal["mercadopago", "mock"] = "mercadopago"
    mercadopago_access_token: SecretStr = SecretStr("")
    mercadopago_webhook_secret: SecretStr = SecretStr("")
    mercadopago_api_base_url: str = "https://api.mercadopago.com"
    mercadopago_notification_url: str = ""
    mercadopago_timeout_seconds: float = 15.0
    pix_expiration_minutes: int = 15

    # Account provisioning
    provisioning_provider: Literal["playwright", "mock"] = "playwright"
    provisioning_headless: bool = True
    provisioning_timeout_ms: int = 30_000

    # Retry policy for provisioning attempts
    retry_max_retries: int = 3
    retry_initial_delay_ms: int = 1_000
    retry_max_delay_ms: int = 30_000
    retry_backoff_multiplier: float = 2.0

    # Task worker
    task_worker_enabled: bool = True
    task_poll_interval_seconds: float = 5.0
    task_slot_concurrency: int = 1
    task_stale_after_minutes: int = 120
    task_recovery_interval_seconds: float = 60.0
    task_max_quantity: int = 100

    # Rate Limiting (Security)
    # Format: "count/period" (e.g., "10/minute", "100/hour")
    rate_limit_auth: str = "10/minute"
    rate_limit_task_create: str = "20/minute"
    rate_limit_enabled: bool = True  # Disable for testing

    @property
    def database_url(self) -> str:
        """Async database URL for SQLAlchemy."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def database_url_sync(self) -> str:
        """Sync database URL for Alembic."""
        return self.database_url.replace("+asyncpg", "").replace("+aiosqlite", "")

    @model_validator(mode="after")
    def check_production_security(self) -> "Settings":
        """Validate configuration invariants and production security.

        Checks:
        - Retry and worker tunables are positive (all environments)
        - SameSite=None requires Secure flag (all environments)
        - CORS must not use wildcard origin (all environments)
        - Database password must not be the default in production
        - AUTH_SECRET must be set and >= 32 chars in production
        - Mercado Pago credentials must be set in production
        """
        if self.retry_max_retries < 0:
            msg = f"RETRY_MAX_RETRIES cannot be negative. Got: {self.retry_max_retries}"
            raise ValueError(msg)
        if self.retry_initial_delay_ms < 0 or self.retry_max_delay_ms < 0:
            msg = "RETRY_INITIAL_DELAY_MS and RETRY_MAX_DELAY_MS cannot be negative."
            raise ValueError(msg)
        if self.retry_backoff_multiplier < 1:
            msg = (
                "RETRY_BACKOFF_MULTIPLIER must be at least 1. "
                f"Got: {self.retry_backoff_multiplier}"
            )
            raise ValueError(msg)
        if self.task_slot_concurrency < 1:
            msg = (
                "TASK_SLOT_CONCURRENCY must be at least 1. "
                f"Got: {self.task_slot_concurrency}"
            )
            raise ValueError(msg)
        if self.task_max_quantity < 1:
            msg = f"TASK_MAX_QUANTITY must be at least 1. Got: {self.task_max_quantity}"
            raise ValueError(msg)
        if self.task_poll_interval_seconds <= 0:
            msg = (
                "TASK_POLL_INTERVAL_SECONDS must be positive. "
                f"Got: {self.task_poll_interval_seconds}"
            )
            raise ValueError(msg)
        if self.task_recovery_interval_seconds <= 0:
            msg = (
                "TASK_RECOVERY_INTERVAL_SECONDS must be positive. "
                f"Got: {self.task_recovery_interval_seconds}"
            )
            raise ValueError(msg)

        # Cookie security invariant: SameSite=None requires Secure (all environments)
        if self.auth_cookie_samesite == "none" and not self.auth_cookie_secure:
            msg = (
                "AUTH_COOKIE_SECURE must be true when AUTH_COOKIE_SAMESITE=none. "
                "Browsers reject SameSite=None cookies without the Secure flag."
            )
            raise ValueError(msg)

        # CORS wildcard with credentials is invalid (all environments)
        if "*" in self.allowed_origins:
            msg = (
                "ALLOWED_ORIGINS must not contain '*' (wildcard). "
                "This application uses credentials (cookies) which are "
                "incompatible with wildcard CORS origins."
            )
            raise ValueError(msg)

        if self.environment == "production":
            if (
                not self.database_url_override
                and self.database_password == _INSECURE_DEFAULT_PASSWORD
            ):
                msg = (
                    "Cannot use default database password in production. "
                    "Set DATABASE_PASSWORD environment variable to a secure value."
                )
                raise ValueError(msg)

            secret_value = self.auth_secret.get_secret_value()
            if len(secret_value) < _MIN_AUTH_SECRET_LENGTH:
                msg = (
                    f"AUTH_SECRET must be at least {_MIN_AUTH_SECRET_LENGTH} "
                    'characters in production. Generate with: python -c "import '
                    'secrets; print(secrets.token_hex(32))"'
                )
                raise ValueError(msg)

            if self.payment_gateway == "mercadopago":
                if not self.mercadopago_access_token.get_secret_value():
                    msg = "MERCADOPAGO_ACCESS_TOKEN must be set in production."
                    raise ValueError(msg)
                if not self.mercadopago_webhook_secret.get_secret_value():
                    msg = (
                        "MERCADOPAGO_WEBHOOK_SECRET must be set in production. "
                        "Unsigned payment notifications are always rejected."
                    )
                    raise ValueError(msg)

        return self


settings = Settings()
