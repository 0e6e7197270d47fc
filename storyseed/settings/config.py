# storyseed/settings/config.py  (Pydantic v2)
from typing import Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    # ---------- App ----------
    # "development" triggers the scheduler dry run shortly after startup
    APP_ENV: Literal["development", "production", "test"] = Field(default="production", env=["APP_ENV"])
    BASE_URL: str = Field(default="http://localhost:5176", env=["BASE_URL"])
    APP_NAME: str = Field(default="StorySeed", env=["APP_NAME"])

    # ---------- LLM (OpenAI-compatible chat completions) ----------
    OPENAI_API_KEY: Optional[str] = Field(default=None, env=["OPENAI_API_KEY"])
    OPENAI_BASE_URL: str = Field(default="https://api.openai.com/v1", env=["OPENAI_BASE_URL"])
    OPENAI_MODEL: str = Field(default="gpt-4o", env=["OPENAI_MODEL"])
    OPENAI_SUMMARY_MODEL: str = Field(default="gpt-4o-mini", env=["OPENAI_SUMMARY_MODEL"])
    OPENAI_TIMEOUT: float = Field(default=30.0, env=["OPENAI_TIMEOUT"])

    # ---------- Daily prompts ----------
    DAILY_PROMPTS_CRON: str = Field(default="0 * * * *", env=["DAILY_PROMPTS_CRON"])
    DAILY_PROMPTS_ENABLED: bool = Field(default=True, env=["DAILY_PROMPTS_ENABLED"])
    MAGIC_LINK_SECRET: str = Field(default="dev-secret-change-me", env=["MAGIC_LINK_SECRET"])
    MAGIC_LINK_TTL_HOURS: int = Field(default=24, env=["MAGIC_LINK_TTL_HOURS"])
    STREAK_WARNING_AFTER_SKIPS: int = Field(default=2, env=["STREAK_WARNING_AFTER_SKIPS"])

    # ---------- pydantic-settings config ----------
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # allow lower/upper env names
        extra="ignore",
    )

    # ---------- Email / SMTP ----------
    EMAIL_TRANSPORT: Literal["smtp", "dummy"] = Field(
        default="smtp",
        env=["EMAIL_TRANSPORT"],
    )
    SMTP_HOST: str = Field(default="smtp.gmail.com", env=["SMTP_HOST"])
    SMTP_PORT: int = Field(default=587, env=["SMTP_PORT"])
    SMTP_USERNAME: Optional[str] = Field(default=None, env=["SMTP_USERNAME"])
    SMTP_PASSWORD: Optional[str] = Field(default=None, env=["SMTP_PASSWORD"])
    SMTP_FROM: Optional[str] = Field(default="StorySeed <hello@storyseed.local>", env=["SMTP_FROM"])
    SMTP_USE_TLS: bool = Field(default=True, env=["SMTP_USE_TLS"])
    SMTP_USE_SSL: bool = Field(default=False, env=["SMTP_USE_SSL"])


settings = Settings()
