"""
Application configuration via pydantic-settings.

All settings are loaded from environment variables (and .env file).

The operating mode (production vs development) is derived from ENV once here
and handed to the services as an explicit OperatingMode value; nothing else
in the code base reads ENV directly.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class OperatingMode(str, Enum):
    PRODUCTION = "production"
    DEVELOPMENT = "development"

    @property
    def is_production(self) -> bool:
        return self is OperatingMode.PRODUCTION


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    mongodb_uri: str
    db_name: str = "localjobs"


class EmailSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    zepto_api_token: str = ""
    zepto_from_email: str = "notify@localjobs.app"
    zepto_from_name: str = "LocalJobs"


class SmsSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    msg91_api_key: str = ""
    msg91_sender_id: str = ""
    # SMS delivery is blocked by DLT when no template is registered
    msg91_otp_template_id: str = ""


class VerificationSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    otp_length: int = 6
    otp_max_attempts: int = 5
    otp_ttl_seconds: int = 600
    otp_resend_throttle_seconds: int = 30

    password_reset_ttl_seconds: int = 900
    password_reset_resend_throttle_seconds: int = 60
    password_reset_token_bytes: int = 32
    # Lifetime of the grant handed back after a password_reset verify()
    password_reset_grant_ttl_seconds: int = 300
    password_reset_url: str = "https://localjobs.app/reset-password"

    # 0 disables the sweeper; the TTL index still removes expired tokens
    verification_sweep_interval_seconds: int = 0


class SessionSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    session_ttl_seconds: int = 2592000


class LoggingSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production


class SentrySettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    sentry_dsn: str = ""
    sentry_send_pii: bool = False
    sentry_traces_sample_rate: float = 0.1
    sentry_profile_sample_rate: float = 0.05


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Core
    env: str = "development"
    app_name: str = "LocalJobs"

    # CORS — all origins, credentials allowed
    cors_origins: list[str] = ["*"]

    # OpenAPI docs URL (None disables the docs UI in production)
    docs_url: Optional[str] = "/docs"

    # Sub-configs (composed via model_validator below)
    db: Optional[DatabaseSettings] = None
    email: Optional[EmailSettings] = None
    sms: Optional[SmsSettings] = None
    verification: Optional[VerificationSettings] = None
    session: Optional[SessionSettings] = None
    logging: Optional[LoggingSettings] = None
    sentry: Optional[SentrySettings] = None

    @model_validator(mode="after")
    def _populate_sub_configs(self) -> "AppSettings":
        # Populate sub-configs from the same env/dotenv source
        if self.db is None:
            self.db = DatabaseSettings()
        if self.email is None:
            self.email = EmailSettings()
        if self.sms is None:
            self.sms = SmsSettings()
        if self.verification is None:
            self.verification = VerificationSettings()
        if self.session is None:
            self.session = SessionSettings()
        if self.logging is None:
            self.logging = LoggingSettings()
        if self.sentry is None:
            self.sentry = SentrySettings()

        return self

    @property
    def operating_mode(self) -> OperatingMode:
        if self.env == "production":
            return OperatingMode.PRODUCTION
        return OperatingMode.DEVELOPMENT

    @property
    def is_production(self) -> bool:
        return self.operating_mode.is_production
