"""
Application Configuration - Pydantic Settings for type-safe config.

NO DICTIONARIES - All configuration is strongly typed.
FAIL FAST - Critical config is validated at startup.
"""

import sys
from decimal import Decimal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(Exception):
    """Raised when critical configuration is missing or invalid."""

    pass


DEFAULT_LINK_PREAMBLE = "Skatehive wants to link your Farcaster account to your app account."


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database Configuration - NO DEFAULT for production safety
    database_url: str = ""
    database_read_url: str | None = None  # Optional read replica
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_pool_recycle: int = 3600
    # Apply pending Alembic migrations in the lifespan before serving
    run_migrations_on_startup: bool = True

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_title: str = "Userbase Identity API"
    api_version: str = "0.1.0"
    api_description: str = "Identity linking and custodial sponsorship service"

    # development | production
    environment: str = "development"

    # Sessions
    session_cookie_name: str = "userbase_refresh"

    # Credential Vault - NO DEFAULT, stored keys are unreadable without it
    key_encryption_secret: str = ""

    # Hive RPC
    hive_api_nodes: str = "https://api.hive.blog,https://api.deathwing.me,https://anyx.io"
    hive_rpc_timeout_seconds: float = 10.0
    hive_rpc_retries: int = 2
    hive_rpc_backoff_seconds: float = 1.0
    hive_tx_lookup_attempts: int = 5
    hive_tx_lookup_delay_seconds: float = 2.0

    # Farcaster directory (Neynar)
    neynar_api_key: str = ""
    neynar_api_url: str = "https://api.neynar.com"
    directory_timeout_seconds: float = 5.0
    directory_retries: int = 1

    # Email (Resend)
    resend_api_key: str = ""
    email_from: str = "Skatehive <noreply@skatehive.app>"
    app_base_url: str = "https://skatehive.app"
    email_timeout_seconds: float = 15.0
    email_retries: int = 2

    # Sponsorship defaults
    sponsorship_default_cost: Decimal = Decimal("3.000")
    sponsorship_default_cost_type: str = "hive_transfer"
    default_sponsor_label: str = "Skatehive"

    # Signature proof challenge
    link_message_preamble: str = DEFAULT_LINK_PREAMBLE

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # json or console

    # Observability - Metrics
    metrics_enabled: bool = True

    # Observability - Tracing
    tracing_enabled: bool = True
    otlp_endpoint: str = "http://otel-collector:4317"
    otlp_insecure: bool = True
    service_name: str = "userbase-identity-api"

    # Observability - Sampling
    trace_sample_rate: float = 1.0  # 1.0 = 100% sampling

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @model_validator(mode="after")
    def validate_critical_config(self) -> "Settings":
        """
        FAIL FAST: Validate critical configuration at startup.

        The app MUST NOT start if critical config is missing.
        """
        errors: list[str] = []

        if not self.database_url:
            errors.append("DATABASE_URL is required but empty or missing")
        elif not self.database_url.startswith(("postgresql", "postgres")):
            errors.append(
                f"DATABASE_URL must be a PostgreSQL URL, got: {self.database_url[:20]}..."
            )

        if not self.key_encryption_secret:
            errors.append("KEY_ENCRYPTION_SECRET is required but empty or missing")
        elif len(self.key_encryption_secret) < 16:
            errors.append("KEY_ENCRYPTION_SECRET must be at least 16 characters")

        if self.environment not in ("development", "production"):
            errors.append(f"ENVIRONMENT must be development or production, got: {self.environment}")

        if self.sponsorship_default_cost_type not in ("hive_transfer", "account_token"):
            errors.append(
                "SPONSORSHIP_DEFAULT_COST_TYPE must be hive_transfer or account_token, "
                f"got: {self.sponsorship_default_cost_type}"
            )

        if not self.hive_node_list:
            errors.append("HIVE_API_NODES must list at least one RPC endpoint")

        if errors:
            error_msg = "\n".join(
                [
                    "",
                    "=" * 60,
                    "CRITICAL CONFIGURATION ERROR - APPLICATION CANNOT START",
                    "=" * 60,
                    *[f"  ✗ {e}" for e in errors],
                    "=" * 60,
                    "",
                ]
            )
            print(error_msg, file=sys.stderr)
            raise ConfigurationError(error_msg)

        return self

    @property
    def read_database_url(self) -> str:
        """Get read database URL (fallback to primary if no replica)."""
        return self.database_read_url or self.database_url

    @property
    def hive_node_list(self) -> list[str]:
        """Hive RPC endpoints in failover order."""
        return [node.strip().rstrip("/") for node in self.hive_api_nodes.split(",") if node.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


# Global settings instance - validates at import time
settings = Settings()


def get_settings() -> Settings:
    """Get application settings instance."""
    return settings
