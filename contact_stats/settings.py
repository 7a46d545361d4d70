from datetime import date
from typing import Literal

from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Values are read from process environment and optionally from `.env`.
    """

    firestore_base_url: str = "https://firestore.googleapis.com/v1"
    firestore_project_id: str = ""
    firestore_database: str = "(default)"
    firestore_api_key: str | None = None
    firestore_bearer_token: str | None = None
    stats_collection: str = "LogBookContactStats"
    contacts_collection: str = "LogBookContact"
    request_timeout_seconds: float = 15.0

    query_style: Literal["enumeration", "range"] = "range"
    anchor_date: date = date(2024, 1, 2)
    timezone: str = "UTC"
    max_week: int = 52
    display_year: int = 2024

    log_level: str = "INFO"
    sentry_dsn: str | None = None
    environment: str = "development"
    release: str | None = None
    sentry_traces_sample_rate: float = 0.1
    rate_limit_per_minute: int = 30
    rate_limit_window_seconds: int = 60

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
