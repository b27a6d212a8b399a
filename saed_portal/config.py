import os
from functools import lru_cache
from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    backend_url: str = Field("http://127.0.0.1:54321", alias="SAED_BACKEND_URL")
    backend_anon_key: Optional[str] = Field(None, alias="SAED_BACKEND_ANON_KEY")
    backend_timeout_seconds: float = Field(10.0, alias="SAED_BACKEND_TIMEOUT_SECONDS")
    profile_fetch_attempts: int = Field(3, ge=1, alias="SAED_PROFILE_FETCH_ATTEMPTS")
    profile_fetch_delay_ms: int = Field(800, ge=0, alias="SAED_PROFILE_FETCH_DELAY_MS")
    min_password_length: int = Field(6, ge=1, alias="SAED_MIN_PASSWORD_LENGTH")
    use_sample_directory: bool = Field(True, alias="SAED_USE_SAMPLE_DIRECTORY")
    notice_ttl_seconds: float = Field(5.0, alias="SAED_NOTICE_TTL_SECONDS")
    openai_api_key: Optional[str] = Field(None, alias="OPENAI_API_KEY")
    advisor_model: str = Field("gpt-4o-mini", alias="SAED_ADVISOR_MODEL")

    class Config:
        env_file = os.getenv("ENV_FILE", ".env")
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache
def get_settings() -> Settings:
    try:
        settings = Settings()  # type: ignore[arg-type]
        if settings.openai_api_key and not os.getenv("OPENAI_API_KEY"):
            os.environ["OPENAI_API_KEY"] = settings.openai_api_key
        return settings
    except ValidationError as exc:
        raise RuntimeError(f"Invalid portal configuration: {exc}") from exc
