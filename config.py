"""Application configuration."""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Application settings."""

    # Database
    database_url: str = "sqlite:///./manga_ingestion.db"

    # Redis
    redis_url: Optional[str] = "redis://localhost:6379/0"
    queue_name: str = "ingestion"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_reload: bool = True

    # Asset storage
    uploads_dir: str = "./uploads"

    # HTTP
    request_timeout: float = 20.0
    image_timeout: float = 30.0
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/141 Safari/537.36"
    )
    retry_times: int = 3
    retry_backoff: float = 0.5
    retry_http_codes: List[int] = [500, 502, 503, 504, 522, 524, 408, 429]

    # Throttles (seconds)
    page_delay: float = 0.1
    pagination_delay: float = 0.2
    inter_source_delay: float = 1.0

    # Scheduling
    max_workers: int = 1
    weekly_weekday: int = 6  # Monday=0 ... Sunday=6
    legacy_daily_hours: List[int] = [0, 6, 12, 18]

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
