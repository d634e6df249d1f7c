"""Application Configuration - environment-driven settings via pydantic-settings"""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Auth
    secret_key: str = "dev-only-change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30

    # Scheduler
    scheduler_enabled: bool = True
    expiry_interval_seconds: float = 60
    reminder_interval_seconds: float = 30
    waitlist_sweep_interval_seconds: float = 300
    reminder_lead_minutes: int = 5

    # Demo catalog
    seed_demo_data: bool = True

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
