"""Application configuration via pydantic-settings."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # App
    debug: bool = False
    environment: str = "development"
    log_level: str = "INFO"
    allowed_origins: list[str] = ["*"]
    # API key (optional): if set, required on the admin and registry routes
    api_key: str = ""

    # Document store
    store_backend: Literal["firestore", "memory"] = "firestore"
    firestore_project: str = ""
    firestore_max_attempts: int = 5

    # Webhook ingestion
    require_task_id: bool = False
    event_date_sites: list[str] = []  # document keys whose EventDate gets parsed
    webhook_rate_limit: str = "120/minute"

    # Registry deliveries
    trigger_timeout: float = 10.0


settings = Settings()
