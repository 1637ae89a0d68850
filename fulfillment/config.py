from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    ENV: str = "development"
    DATABASE_URL: str = ""
    ADMIN_KEY: str = ""

    CONNECTOR_TIMEOUT_SECONDS: float = 30.0
    PROOF_TOKEN_TTL_DAYS: int = 7
    ENABLE_MONITOR_SCHEDULER: bool = False

    # SLA threshold defaults; overrides persisted in monitoring_settings win
    UNASSIGNED_ORDER_HOURS: float = 24
    ASSIGNED_BUT_NOT_ACCEPTED_HOURS: float = 48
    ACCEPTED_BUT_NOT_STARTED_HOURS: float = 72
    IN_PROGRESS_TOO_LONG_DAYS: float = 7
    NO_TRACKING_AFTER_DAYS: float = 3
    STALE_TRACKING_DAYS: float = 14

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
