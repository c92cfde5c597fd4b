"""Configuration management for the proof rewards service.

Configuration is loaded from environment variables. The legacy bare names
(``WALLET_PRIVATE_KEY``, ``APP_ID``, ``PORT`` ...) are accepted alongside the
prefixed ones so existing deployments keep working.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache

from pydantic import AliasChoices, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEVNET_RPC_URL = "https://api.devnet.solana.com"
DEFAULT_TOKEN_DECIMALS = 9


class AppEnvironment(StrEnum):
    LOCAL = "local"
    TEST = "test"
    PROD = "prod"


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AppConfig(BaseSettings):
    name: str = Field(default="proof-rewards-service")
    env: AppEnvironment = Field(default=AppEnvironment.LOCAL)
    version: str = Field(default="0.1.0")
    log_level: LogLevel = Field(default=LogLevel.INFO)

    model_config = SettingsConfigDict(env_prefix="APP_")

    @field_validator("env", mode="before")
    @classmethod
    def validate_env(cls, v: str | AppEnvironment) -> AppEnvironment:
        if isinstance(v, AppEnvironment):
            return v
        return AppEnvironment(v.strip().lower())

    @field_validator("log_level", mode="before")
    @classmethod
    def validate_log_level(cls, v: str | LogLevel) -> LogLevel:
        if isinstance(v, LogLevel):
            return v
        return LogLevel(v.strip().upper())


class ServerConfig(BaseSettings):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000, validation_alias=AliasChoices("server_port", "port"))
    workers: int = Field(default=1)

    model_config = SettingsConfigDict(env_prefix="SERVER_", populate_by_name=True)


class SecurityConfig(BaseSettings):
    cors_allowed_origins: str = Field(
        default="*",
        validation_alias=AliasChoices("security_cors_allowed_origins", "cors_origin"),
    )
    cors_allow_methods: list[str] = Field(default=["GET", "POST"])
    cors_allow_headers: list[str] = Field(
        default=["Content-Type", "Authorization", "X-Request-ID"]
    )
    # Proof envelopes carry signatures and witness data; the legacy server accepted 50mb.
    max_request_size_bytes: int = Field(default=50 * 1024 * 1024)
    transfer_api_token: SecretStr = Field(default=SecretStr(""))

    model_config = SettingsConfigDict(env_prefix="SECURITY_", populate_by_name=True)

    @field_validator("cors_allowed_origins", mode="after")
    @classmethod
    def validate_cors_allowed_origins(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


class ObservabilityConfig(BaseSettings):
    service_name: str = Field(default="proof-rewards-service")
    otlp_endpoint: str | None = Field(
        default=None,
        validation_alias=AliasChoices("otel_exporter_otlp_endpoint", "otel_otlp_endpoint"),
    )
    otlp_insecure: bool = Field(
        default=True,
        validation_alias=AliasChoices("otel_exporter_otlp_insecure", "otel_otlp_insecure"),
    )
    log_record_format: str = Field(default="json")

    model_config = SettingsConfigDict(env_prefix="OTEL_", populate_by_name=True)


class SolanaConfig(BaseSettings):
    rpc_url: str = Field(
        default=DEVNET_RPC_URL,
        validation_alias=AliasChoices("solana_rpc_url", "rpc_url"),
    )
    wallet_private_key: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("solana_wallet_private_key", "wallet_private_key"),
    )
    reward_token_mint: str = Field(
        default="",
        validation_alias=AliasChoices("solana_reward_token_mint", "reward_token_mint"),
    )
    # None means "read the decimals from the mint account on the first payout".
    token_decimals: int | None = Field(default=DEFAULT_TOKEN_DECIMALS, ge=0, le=18)
    explorer_cluster: str = Field(default="devnet")
    rpc_timeout_s: float = Field(default=15.0, gt=0)
    confirm_timeout_s: float = Field(default=60.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="SOLANA_", populate_by_name=True)

    @field_validator("token_decimals", mode="before")
    @classmethod
    def parse_token_decimals(cls, v: int | str | None) -> int | None:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @property
    def explorer_tx_url_template(self) -> str:
        return "https://explorer.solana.com/tx/{signature}?cluster=" + self.explorer_cluster


class ReclaimConfig(BaseSettings):
    app_id: str = Field(default="", validation_alias=AliasChoices("reclaim_app_id", "app_id"))
    app_secret: SecretStr = Field(
        default=SecretStr(""),
        validation_alias=AliasChoices("reclaim_app_secret", "app_secret"),
    )
    flipkart_provider_id: str = Field(
        default="",
        validation_alias=AliasChoices("reclaim_flipkart_provider_id", "flipkart_provider_id"),
    )
    amazon_provider_id: str = Field(
        default="",
        validation_alias=AliasChoices("reclaim_amazon_provider_id", "amazon_provider_id"),
    )
    callback_url: str = Field(
        default="",
        validation_alias=AliasChoices("reclaim_callback_url", "callback_url"),
    )
    test_mode: bool = Field(default=True)
    verify_timeout_s: float = Field(default=30.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="RECLAIM_", populate_by_name=True)


class IdempotencyConfig(BaseSettings):
    """Duplicate proof suppression.

    A proof that already paid out is rejected for ``window_seconds``.
    """

    enabled: bool = Field(default=True)
    window_seconds: float = Field(default=600.0, gt=0)

    model_config = SettingsConfigDict(env_prefix="IDEMPOTENCY_")


class Settings(BaseSettings):
    app: AppConfig = Field(default_factory=AppConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    solana: SolanaConfig = Field(default_factory=SolanaConfig)
    reclaim: ReclaimConfig = Field(default_factory=ReclaimConfig)
    idempotency: IdempotencyConfig = Field(default_factory=IdempotencyConfig)
    metrics_token: str | None = Field(default=None)

    @model_validator(mode="after")
    def validate_security_settings(self) -> Settings:
        if self.app.env == AppEnvironment.PROD and self.observability.otlp_insecure:
            if self.observability.otlp_endpoint:
                raise ValueError("OTLP insecure mode is not allowed in production")
        return self


REQUIRED_SETTINGS: dict[str, tuple[str, str]] = {
    "WALLET_PRIVATE_KEY": ("solana", "wallet_private_key"),
    "REWARD_TOKEN_MINT": ("solana", "reward_token_mint"),
    "APP_ID": ("reclaim", "app_id"),
    "APP_SECRET": ("reclaim", "app_secret"),
    "FLIPKART_PROVIDER_ID": ("reclaim", "flipkart_provider_id"),
    "AMAZON_PROVIDER_ID": ("reclaim", "amazon_provider_id"),
    "CALLBACK_URL": ("reclaim", "callback_url"),
}


def missing_required_settings(settings: Settings) -> list[str]:
    """Return the names of required variables that are not set."""
    missing: list[str] = []
    for env_name, (group, field) in REQUIRED_SETTINGS.items():
        value = getattr(getattr(settings, group), field)
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        if not str(value or "").strip():
            missing.append(env_name)
    return missing


@lru_cache
def get_settings() -> Settings:
    return Settings()


def reload_settings() -> Settings:
    get_settings.cache_clear()
    return get_settings()
