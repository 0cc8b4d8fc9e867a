from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PATH = Path(__file__).resolve().parent.parent / ".env.local"

ENGAGEMENTS_LIMIT_DEFAULT = 3
ENGAGEMENTS_LIMIT_MIN = 1
ENGAGEMENTS_LIMIT_MAX = 20


class Settings(BaseSettings):
    # Environment settings
    environment: str = "development"
    debug: bool = False
    LOG_LEVEL: str = "INFO"

    # HubSpot settings
    HUBSPOT_ACCESS_TOKEN: str | None = None
    HUBSPOT_BASE_URL: str = "https://api.hubapi.com"
    HUBSPOT_REQUEST_TIMEOUT_SECONDS: float = 15.0
    HUBSPOT_MAX_RETRIES: int = 3
    HUBSPOT_MAX_CONCURRENCY: int = 5

    # Engagement pipeline settings
    HUBSPOT_ENGAGEMENTS_LIMIT: int = ENGAGEMENTS_LIMIT_DEFAULT
    COMPANY_ENGAGEMENT_CONTACTS_LIMIT: int = 10
    ENGAGEMENT_CACHE_TTL_SECONDS: int = 15 * 60
    ENGAGEMENT_PIPELINE_TIMEOUT_SECONDS: float = 25.0
    ENGAGEMENT_SUMMARY_TIMEOUT_SECONDS: float = 20.0
    ENGAGEMENT_CACHE_BACKEND: str = "memory"  # "memory" or "redis"

    # Redis settings (only used by the redis cache backend)
    REDIS_URL: str | None = None

    # OpenAI settings
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_MAX_TOKENS: int = 4096
    OPENAI_TEMPERATURE: float = 0.2
    OPENAI_TIMEOUT_SECONDS: float = 60.0
    OPENAI_MAX_RETRIES: int = 2

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("HUBSPOT_ENGAGEMENTS_LIMIT", mode="before")
    @classmethod
    def _clamp_engagements_limit(cls, value):
        """Fall back to the default on garbage, then clamp into [1, 20]."""
        try:
            limit = int(value)
        except (TypeError, ValueError):
            return ENGAGEMENTS_LIMIT_DEFAULT
        if limit == 0:
            return ENGAGEMENTS_LIMIT_DEFAULT
        return max(ENGAGEMENTS_LIMIT_MIN, min(ENGAGEMENTS_LIMIT_MAX, limit))

    @field_validator("ENGAGEMENT_CACHE_BACKEND")
    @classmethod
    def _normalize_cache_backend(cls, value: str) -> str:
        backend = value.strip().lower()
        if backend not in ("memory", "redis"):
            raise ValueError(f"Unsupported engagement cache backend: {value}")
        return backend

    def hubspot_configured(self) -> bool:
        return bool(self.HUBSPOT_ACCESS_TOKEN)

    def summarizer_configured(self) -> bool:
        return bool(self.OPENAI_API_KEY)

    def get_pipeline_config(self) -> dict:
        """
        Get engagement pipeline tuning.
        Development keeps a smaller outbound pool so a laptop doesn't trip HubSpot limits.
        """
        config = {
            "limit": self.HUBSPOT_ENGAGEMENTS_LIMIT,
            "company_contacts_limit": self.COMPANY_ENGAGEMENT_CONTACTS_LIMIT,
            "max_concurrency": self.HUBSPOT_MAX_CONCURRENCY,
            "timeout_seconds": self.ENGAGEMENT_PIPELINE_TIMEOUT_SECONDS,
            "summary_timeout_seconds": self.ENGAGEMENT_SUMMARY_TIMEOUT_SECONDS,
            "cache_ttl_seconds": self.ENGAGEMENT_CACHE_TTL_SECONDS,
        }

        if self.environment == "development":
            config["max_concurrency"] = min(config["max_concurrency"], 3)

        return config


settings = Settings()
