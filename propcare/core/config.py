from datetime import timedelta
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_ACCESS_MINUTES = 5 * 60
PROD_ACCESS_MINUTES = 15


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="development", alias="APP_ENV")
    database_url: str = Field(alias="DATABASE_URL")

    jwt_access_secret: str = Field(alias="JWT_ACCESS_SECRET", min_length=32)
    jwt_refresh_secret: str = Field(alias="JWT_REFRESH_SECRET", min_length=32)
    refresh_token_hmac_secret: str = Field(
        alias="REFRESH_TOKEN_HMAC_SECRET", min_length=32
    )
    jwt_algo: str = Field(default="HS256", alias="JWT_ALGO")
    access_min: int | None = Field(default=None, alias="ACCESS_MIN", ge=1)
    refresh_days: int = Field(default=7, alias="REFRESH_TOKEN_DAYS", ge=1)
    invite_ttl_days: int = Field(default=7, alias="INVITE_TTL_DAYS", ge=1)

    frontend_url: str | None = Field(default=None, alias="FRONTEND_URL")
    cors_origins: list[str] = Field(
        default=["http://localhost:5173", "http://127.0.0.1:5173"],
        alias="CORS_ORIGINS",
    )

    smtp_host: str | None = Field(default=None, alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: str | None = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: str | None = Field(default=None, alias="SMTP_PASSWORD")
    mail_from: str | None = Field(default=None, alias="MAIL_FROM")

    twilio_account_sid: str | None = Field(default=None, alias="TWILIO_ACCOUNT_SID")
    twilio_auth_token: str | None = Field(default=None, alias="TWILIO_AUTH_TOKEN")
    twilio_from_number: str | None = Field(default=None, alias="TWILIO_FROM_NUMBER")

    session_purge_interval_seconds: int = Field(
        default=3600, alias="SESSION_PURGE_INTERVAL_SECONDS", ge=0
    )

    @model_validator(mode="after")
    def _check_distinct_secrets(self) -> "Settings":
        # Access and refresh tokens are signed with independent keys.
        if self.jwt_access_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")
        return self

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def access_token_ttl(self) -> timedelta:
        if self.access_min is not None:
            return timedelta(minutes=self.access_min)
        if self.app_env == "development":
            return timedelta(minutes=DEV_ACCESS_MINUTES)
        return timedelta(minutes=PROD_ACCESS_MINUTES)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.refresh_days)

    @property
    def invite_ttl(self) -> timedelta:
        return timedelta(days=self.invite_ttl_days)


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore
