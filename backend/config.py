"""Application configuration using pydantic-settings."""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Load credential fields from the OS keychain via ``keyring``.

    Only fields whose uppercase name appears in
    :data:`~services.credential_manager.CREDENTIAL_KEYS` are looked up.
    All other fields return ``None`` so the next source in the chain
    handles them.
    """

    def get_field_value(
        self, field: FieldInfo, field_name: str
    ) -> tuple[Any, str, bool]:
        env_name = field_name.upper()
        if env_name not in CREDENTIAL_KEYS:
            return None, field_name, False
        value = get_credential(env_name)
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        d: dict[str, Any] = {}
        for field_name, field_info in self.settings_cls.model_fields.items():
            value, key, is_complex = self.get_field_value(field_info, field_name)
            if value is not None:
                d[key] = value
        return d


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            KeychainSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    # Database
    DATABASE_URL: str = "sqlite:///./bank_sync.db"

    # Celery broker / result backend
    REDIS_URL: str = "redis://localhost:6379/0"

    # Plaid credentials
    PLAID_CLIENT_ID: str = ""
    PLAID_SECRET: str = ""
    PLAID_ENVIRONMENT: str = "sandbox"

    # Account fan-out delays (seconds between consecutive sync-account jobs)
    MANUAL_SYNC_ACCOUNT_DELAY_SECONDS: int = 2
    AUTO_SYNC_ACCOUNT_DELAY_SECONDS: int = 30
    TRANSACTION_NOTIFICATION_DELAY_SECONDS: int = 120

    # Browser origins allowed to call the API; empty disables CORS
    CORS_ORIGINS: list[str] = []

    # Plaid often has no transactions ready right after linking
    INITIAL_SETUP_FOLLOWUP_SYNC_DELAY_SECONDS: int = 300

    # Transaction upsert window and batching
    TRANSACTION_SYNC_OVERLAP_DAYS: int = 5
    TRANSACTION_INITIAL_SYNC_DAYS: int = 90
    TRANSACTION_UPSERT_BATCH_SIZE: int = 500

    # Transaction summary notifications
    TRANSACTION_SUMMARY_LOOKBACK_DAYS: int = 7
    LARGE_TRANSACTION_THRESHOLD: int = 100
    LARGE_TRANSACTION_LIMIT: int = 5

    # Connection recovery
    RECOVERY_MAX_RETRIES: int = 3
    RECOVERY_BASE_DELAY_MINUTES: int = 15

    # Inactivity expiry (Plaid items go stale after ~30 days without access)
    EXPIRY_WARNING_INACTIVE_DAYS: int = 20
    EXPIRY_INACTIVE_DAYS: int = 30
    EXPIRY_RENOTIFY_DAYS: int = 7

    # expires_at based notifications
    EXPIRATION_WARNING_DAYS: int = 14
    EXPIRATION_CRITICAL_DAYS: int = 3

    # Disconnected connections
    DISCONNECTED_RENOTIFY_DAYS: int = 3
    RECONNECT_ALERT_RENOTIFY_DAYS: int = 3
    AUTO_DISABLE_AFTER_DAYS: int = 30
    AUTO_DISABLE_MIN_NOTIFICATIONS: int = 5

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    @field_validator("ENVIRONMENT", mode="before")
    @classmethod
    def normalize_environment(cls, v: str) -> str:
        """Lowercase ENVIRONMENT so ``Production`` and ``production`` match."""
        return v.strip().lower() if isinstance(v, str) else v

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    @property
    def is_production(self) -> bool:
        """True when scheduled sweeps are allowed to act."""
        return self.ENVIRONMENT == "production"


settings = Settings()
