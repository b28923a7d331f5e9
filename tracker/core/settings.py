"""Configuration and environment settings for the Card Statement Tracker."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings for the Card Statement Tracker."""

    groq_api_key: str
    vision_model: str = "meta-llama/llama-4-scout-17b-16e-instruct"
    vision_temperature: float = 0.1
    vision_max_completion_tokens: int = 8000
    vision_top_p: float = 1.0
    vision_stream: bool = False
    frames_per_batch: int = 5
    rate_limit_max_attempts: int = 5
    rate_limit_base_delay: float = 2.0
    database_url: str = "sqlite:///jobs.db"
    S3_ENDPOINT_URL: str | None = None
    S3_ACCESS_KEY: str | None = None
    S3_SECRET_KEY: str | None = None
    S3_BUCKET: str = "transaction-tracker"
    google_places_api_key: str | None = None
    places_base_url: str = "https://maps.googleapis.com/maps/api/place/textsearch/json"
    places_timeout: float = 10.0
    max_concurrent_jobs: int = 2
    stuck_job_minutes: int = 5
    max_job_retries: int = 3
    retry_batch_size: int = 5
    log_file: str = "jobs/worker.log"
    server_host: str = "127.0.0.1"
    server_port: int = 8000

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


def get_settings() -> "Settings":
    """Return an instance of the application settings."""
    return Settings()
