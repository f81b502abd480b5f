"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    backend_url: str = "http://localhost:5000"
    request_timeout_seconds: float = 30.0
    auth_provider: Literal["mock", "jwt"] = "jwt"
    jwt_secret: str | None = None
    jwt_algorithm: str = "HS256"
    post_payment_path: str = "/client-dashboard"
    negotiation_payment_failure_path: str = "/client-negotiations"
    direct_upload_payment_failure_path: str = "/client-direct-upload"

    model_config = SettingsConfigDict(env_prefix="SCRIBEDESK_", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
