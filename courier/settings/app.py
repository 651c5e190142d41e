"""Client settings powered by Pydantic BaseSettings."""

from typing import Annotated

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from courier.constants import (
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_RETRY_LIMIT,
    DEFAULT_USER_AGENT,
)


class CourierSettings(BaseSettings):
    """Environment-driven defaults for every client instance.

    Values feed the base option layer; per-instance and per-call options
    override them.
    """

    model_config = SettingsConfigDict(
        env_prefix="COURIER_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        DEFAULT_USER_AGENT
    )
    retry_limit: Annotated[int, Field(ge=0, le=20)] = DEFAULT_RETRY_LIMIT
    max_redirects: Annotated[int, Field(ge=0, le=100)] = DEFAULT_MAX_REDIRECTS
    timeout_seconds: Annotated[float | None, Field(gt=0)] = None
    decompress: bool = True
    log_level: str = "INFO"
    log_json: bool = True


def get_settings() -> CourierSettings:
    """Get a settings instance."""
    return CourierSettings()
