"""Configuration system using pydantic-settings with environment variable loading.

Every settings group is frozen. The Session & Config Store publishes a new
``AppSettings`` object on each change, so a task that grabbed a snapshot at
the start of its cycle never sees a value change mid-cycle.
"""

from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

OracleProvider = Literal["gemini", "openai", "deepseek"]


class ExchangeSettings(BaseSettings):
    """MEXC exchange credentials."""

    model_config = SettingsConfigDict(env_prefix="EXCHANGE_", frozen=True)

    api_key: SecretStr = SecretStr("")
    secret_key: SecretStr = SecretStr("")

    @property
    def has_credentials(self) -> bool:
        """True when both halves of the credential pair are non-empty."""
        return bool(
            self.api_key.get_secret_value().strip()
            and self.secret_key.get_secret_value().strip()
        )


class OracleSettings(BaseSettings):
    """Decision oracle provider selection and per-provider credentials."""

    model_config = SettingsConfigDict(env_prefix="ORACLE_", frozen=True)

    provider: OracleProvider = "gemini"
    gemini_api_key: SecretStr = SecretStr("")
    openai_api_key: SecretStr = SecretStr("")
    deepseek_api_key: SecretStr = SecretStr("")
    model: str | None = None  # None = provider default

    def credential_for(self, provider: str | None = None) -> str:
        """Return the API key of the given (or selected) provider."""
        key: SecretStr = getattr(self, f"{provider or self.provider}_api_key")
        return key.get_secret_value()


class TradingSettings(BaseSettings):
    """Trading parameters and mode flags."""

    model_config = SettingsConfigDict(env_prefix="TRADING_", frozen=True)

    symbol: str = "BTCUSDT"
    leverage: int = Field(default=10, ge=1, le=125)
    risk_percent: int = Field(default=2, ge=1, le=100)
    is_auto_trading: bool = False
    interval_minutes: int = Field(default=1, ge=1)
    is_live_mode: bool = False


class CloudSettings(BaseSettings):
    """Optional cloud-sync endpoint (Supabase-style REST)."""

    model_config = SettingsConfigDict(env_prefix="CLOUD_", frozen=True)

    url: str = ""
    anon_key: SecretStr = SecretStr("")

    @property
    def is_configured(self) -> bool:
        return bool(self.url.strip() and self.anon_key.get_secret_value().strip())


class PollingSettings(BaseSettings):
    """Cadences of the background tasks and the external call deadline."""

    model_config = SettingsConfigDict(env_prefix="POLLING_", frozen=True)

    market_interval: float = 5.0  # seconds between ticker polls
    account_interval: float = 30.0  # seconds between account syncs
    call_timeout: float = 20.0  # deadline for any single exchange/oracle call


class SessionSettings(BaseSettings):
    """Operator login. Not security-grade: a plain credential comparison."""

    model_config = SettingsConfigDict(env_prefix="SESSION_", frozen=True)

    username: str = "admin"
    password: SecretStr = SecretStr("666666")


class DashboardSettings(BaseSettings):
    """Dashboard server configuration."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_", frozen=True)

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True
    update_interval: int = 5  # seconds between WebSocket pushes


class StorageSettings(BaseSettings):
    """Location of the settings database."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_", frozen=True)

    db_path: str = "data/aegis.db"


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        frozen=True,
    )

    log_level: str = "INFO"
    exchange: ExchangeSettings = ExchangeSettings()
    oracle: OracleSettings = OracleSettings()
    trading: TradingSettings = TradingSettings()
    cloud: CloudSettings = CloudSettings()
    polling: PollingSettings = PollingSettings()
    session: SessionSettings = SessionSettings()
    dashboard: DashboardSettings = DashboardSettings()
    storage: StorageSettings = StorageSettings()


# Groups the operator may edit at runtime and that are persisted on save.
USER_EDITABLE_GROUPS: dict[str, type[BaseSettings]] = {
    "exchange": ExchangeSettings,
    "oracle": OracleSettings,
    "trading": TradingSettings,
    "cloud": CloudSettings,
}
