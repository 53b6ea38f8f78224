from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CORS_ORIGINS = (
    "http://localhost:3000",
    "http://localhost:3002",
    "https://devom.fr",
    "https://www.devom.fr",
    "https://devom-frontend.vercel.app",
)


class Settings(BaseSettings):
    APP_NAME: str = "Devom Contact"
    APP_PORT: int = 3001
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"
    CORS_ORIGINS: str = ",".join(DEFAULT_CORS_ORIGINS)
    MAX_BODY_BYTES: int = 1024 * 1024

    MAIL_TRANSPORT: Literal["auto", "smtp", "smtp_fallback", "resend", "brevo"] = "auto"
    MAIL_QUEUE_ENABLED: bool = False
    MAIL_HOST: str = "ssl0.ovh.net"
    MAIL_PORT: int = 587
    MAIL_USER: str = ""
    MAIL_PASS: str = ""
    MAIL_FROM: str = ""
    MAIL_FROM_NAME: str = "Devom"
    MAIL_TO: str = ""
    MAIL_SUBJECT_TAG: str = "Devom Contact"
    # seconds before a failed SMTP transport may be verified again; empty = never
    MAIL_RETRY_COOLDOWN: float | None = 60.0

    RESEND_API_KEY: str = ""
    RESEND_ENDPOINT: str = "https://api.resend.com/emails"
    BREVO_API_KEY: str = ""
    BREVO_ENDPOINT: str = "https://api.brevo.com/v3/smtp/email"

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("MAIL_FROM", "MAIL_TO", "MAIL_USER", mode="before")
    @classmethod
    def _strip(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("MAIL_RETRY_COOLDOWN", mode="before")
    @classmethod
    def _empty_cooldown(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def cors_origins(self) -> list[str]:
        origins: list[str] = []
        for origin in self.CORS_ORIGINS.split(","):
            origin = origin.strip()
            if origin and origin not in origins:
                origins.append(origin)
        return origins

    @property
    def transport(self) -> str:
        if self.MAIL_TRANSPORT != "auto":
            return self.MAIL_TRANSPORT
        return "resend" if self.RESEND_API_KEY else "smtp_fallback"

    @property
    def sender_address(self) -> str:
        return self.MAIL_FROM or self.MAIL_USER

    @property
    def recipient_address(self) -> str:
        return self.MAIL_TO or self.MAIL_USER or self.MAIL_FROM

    @property
    def broker_url(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/0"


settings = Settings()
