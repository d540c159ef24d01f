from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Hustly API"
    app_env: str = "dev"
    log_level: str = "INFO"

    secret_key: str
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60
    database_url: str

    # photos
    media_root: Path = Path("media")
    media_url: str = "/media"
    public_base_url: Optional[str] = None  # eBay needs absolute, public image URLs

    # eBay OAuth app
    ebay_client_id: str = ""
    ebay_client_secret: str = ""
    ebay_redirect_uri: str = ""
    ebay_environment: str = "production"  # production | sandbox
    ebay_marketplace_id: str = "EBAY_US"

    # token lifecycle / HTTP behaviour
    ebay_token_refresh_buffer_minutes: int = 30
    ebay_max_retries: int = 3
    ebay_retry_backoff_seconds: float = 1.0
    ebay_retry_max_delay_seconds: float = 15.0
    ebay_timeout_seconds: float = 30.0

    # optional fixed business policy IDs (skip lookup when all three are set)
    ebay_fulfillment_policy_id: Optional[str] = None
    ebay_payment_policy_id: Optional[str] = None
    ebay_return_policy_id: Optional[str] = None

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
