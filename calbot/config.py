from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ---- Environment ----
    ENV: str = Field(default="development")
    DEBUG: bool = Field(default=False)

    # ---- Telegram ----
    TELEGRAM_BOT_TOKEN: str = Field(default="")
    TELEGRAM_WEBHOOK_URL: str = Field(default="")
    TELEGRAM_WEBHOOK_PATH: str = Field(default="/telegram/webhook")
    TELEGRAM_WEBHOOK_SECRET: str = Field(default="")

    # ---- Key-value store ----
    REDIS_URL: str = Field(default="")
    SESSION_KEY_PREFIX: str = Field(default="session:")
    CORRELATION_KEY_PREFIX: str = Field(default="event:")

    # ---- Date parsing ----
    DATE_PARSER_URL: str = Field(default="")
    DATE_PARSER_TIMEOUT: float = Field(default=5.0)
    DEFAULT_TIMEZONE: str = Field(default="Europe/Moscow")

    # ---- Calendar ----
    GOOGLE_CLIENT_ID: str = Field(default="")
    GOOGLE_CLIENT_SECRET: str = Field(default="")
    GOOGLE_REFRESH_TOKEN: str = Field(default="")
    GOOGLE_CALENDAR_ID: str = Field(default="primary")
    CALENDAR_REQUEST_RETRIES: int = Field(default=2)

    # ---- Users ----
    ALLOWED_TELEGRAM_IDS: List[int] = Field(default_factory=list)

    # ---- App / Deployment ----
    APP_HOST: str = Field(default="0.0.0.0")
    APP_PORT: int = Field(default=8000)

    # ---- Logging ----
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FILE_PATH: str = Field(default="logs/calbot.log")

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
