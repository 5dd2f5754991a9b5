from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./casero.db"

    # Membership codes
    card_code_min: int = 100
    card_code_max: int = 999
    card_code_max_attempts: int = 1000
    join_conflict_retries: int = 3

    # Stamp ledger
    stamp_write_max_attempts: int = 5

    # Document store limits
    store_in_filter_limit: int = Field(default=10, ge=1)

    # Discovery feed
    discovery_cache_ttl_seconds: int = 5 * 60
    discovery_page_size: int = 10
    business_page_size_max: int = 50

    # Push notifications
    push_notifications_enabled: bool = False
    push_api_url: str = "https://exp.host/--/api/v2/push/send"
    push_timeout_seconds: float = 10.0
    push_message_ttl_seconds: int = 3600

    @field_validator("card_code_max")
    @classmethod
    def _validate_code_range(cls, value: int, info) -> int:
        minimum = info.data.get("card_code_min", 0)
        if value < minimum:
            raise ValueError("card_code_max must be greater than or equal to card_code_min")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
