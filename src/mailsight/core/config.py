from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    environment: str = "dev"
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"
    cors_origins: list[str] = ["*"]

    database_url: str = "sqlite:///./mailsight.db"
    redis_url: str = "redis://localhost:6379/0"

    storage_backend: Literal["local", "s3"] = "local"
    local_storage_path: Path = Path(".local_storage")

    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    s3_bucket: str = "mailsight"
    s3_access_key_id: str | None = None
    s3_secret_access_key: str | None = None

    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o-mini"
    openai_temperature: float = 0.3
    openai_max_tokens: int = 500
    openai_timeout_seconds: float = 30.0
    openai_max_retries: int = 2

    summary_max_body_chars: int = 3000

    finance_max_content_chars: int = 4000
    finance_min_text_chars: int = 20
    finance_min_attachment_chars: int = 50
    finance_payslip_tolerance: float = 100.0
    finance_generic_tolerance_ratio: float = 0.01
    finance_temperature: float = 0.2
    finance_max_tokens: int = 500

    batch_size: int = 5
    batch_delay_ms: int = 200

    max_upload_bytes: int = 10 * 1024 * 1024
    default_page_size: int = 50


settings = Settings()
