"""Centralized operator settings using pydantic-settings.

This module provides a single source of truth for all operator configuration
loaded from environment variables. Uses pydantic for automatic validation,
type coercion, and documentation.

Settings are only read by the operator entry point and the kopf handler layer.
The reconciliation engine receives an immutable ReconcilerConfig built from
them and never consults the environment itself.
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Operator configuration loaded from environment variables.

    Credentials default to empty values so that importing the operator never
    fails; the entry point validates them with missing_credentials() before
    any handler is registered with a live cluster.
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Zitadel
    zitadel_url: str = Field(
        default="",
        description="Base URL of the Zitadel instance",
        validation_alias="ZITADEL_URL",
    )
    zitadel_token: SecretStr = Field(
        default=SecretStr(""),
        description="Zitadel personal access token (environment only)",
        validation_alias="ZITADEL_TOKEN",
    )

    # Cloudflare
    cloudflare_api_token: SecretStr = Field(
        default=SecretStr(""),
        description="Cloudflare API token (environment only)",
        validation_alias="CLOUDFLARE_API_TOKEN",
    )
    cloudflare_account_id: str = Field(
        default="",
        description="Cloudflare account ID",
        validation_alias="CLOUDFLARE_ACCOUNT_ID",
    )
    cloudflare_idp_id: str = Field(
        default="",
        description="Cloudflare Access identity provider ID configured for Zitadel",
        validation_alias="CLOUDFLARE_IDP_ID",
    )
    session_duration: str = Field(
        default="24h",
        description="Cloudflare Access session duration",
        validation_alias="SESSION_DURATION",
    )

    # External API behaviour
    http_timeout_seconds: float = Field(
        default=30.0,
        validation_alias="HTTP_TIMEOUT_SECONDS",
        description="Timeout applied to every Zitadel and Cloudflare request",
    )

    # Reconciliation behavior
    transient_retry_seconds: int = Field(
        default=30,
        validation_alias="TRANSIENT_RETRY_SECONDS",
        description="Retry delay after transient failures (network, API errors)",
    )
    policy_retry_seconds: int = Field(
        default=300,
        validation_alias="POLICY_RETRY_SECONDS",
        description="Retry delay after failures that need a spec correction",
    )
    resync_interval_seconds: int = Field(
        default=300,
        validation_alias="RESYNC_INTERVAL_SECONDS",
        description="Interval between periodic resyncs of every SecuredApplication",
    )
    reconcile_timeout_seconds: float = Field(
        default=120.0,
        validation_alias="RECONCILE_TIMEOUT_SECONDS",
        description="Deadline for a single convergence pass",
    )
    reconcile_jitter_max_seconds: float = Field(
        default=0.0,
        validation_alias="RECONCILE_JITTER_MAX_SECONDS",
        description="Maximum jitter in seconds before a convergence pass starts",
    )

    # Logging configuration
    log_level: str = Field(
        default="INFO",
        validation_alias="LOG_LEVEL",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    json_logs: bool = Field(
        default=True,
        validation_alias="JSON_LOGS",
        description="Enable JSON formatted logging for structured log aggregation",
    )
    correlation_ids: bool = Field(
        default=True,
        validation_alias="CORRELATION_IDS",
        description="Enable correlation IDs in logs for request tracing",
    )
    log_health_probes: bool = Field(
        default=False,
        validation_alias="LOG_HEALTH_PROBES",
        description="Log health probe and metrics scrape requests",
    )

    # Namespace watching
    namespaces: str = Field(
        default="",
        validation_alias="ZITADEL_ACCESS_OPERATOR_NAMESPACES",
        description="Comma-separated list of namespaces to watch (empty = all namespaces)",
    )

    # Metrics and observability
    metrics_port: int = Field(
        default=8081,
        validation_alias="METRICS_PORT",
        description="Port for Prometheus metrics endpoint",
    )
    metrics_host: str = Field(
        default="0.0.0.0",
        validation_alias="METRICS_HOST",
        description="Host address to bind metrics server",
    )

    @property
    def watched_namespaces(self) -> list[str] | None:
        """Parse watched namespaces from comma-separated string.

        Returns:
            List of namespace names, or None to watch all namespaces
        """
        if self.namespaces:
            return [ns.strip() for ns in self.namespaces.split(",") if ns.strip()]
        return None

    def missing_credentials(self) -> list[str]:
        """Return the environment variables that must be set but are empty."""
        required = {
            "ZITADEL_URL": self.zitadel_url,
            "ZITADEL_TOKEN": self.zitadel_token.get_secret_value(),
            "CLOUDFLARE_API_TOKEN": self.cloudflare_api_token.get_secret_value(),
            "CLOUDFLARE_ACCOUNT_ID": self.cloudflare_account_id,
            "CLOUDFLARE_IDP_ID": self.cloudflare_idp_id,
        }
        return [name for name, value in required.items() if not value]


# Global settings instance - initialized once at module import
settings = Settings()
