from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    logging_key: str = Field(default="")
    use_defaults: bool = Field(default=True)
    log_level: str = Field(default="INFO")

    # OpenAPI document loaded by the gateway at startup.
    spec_path: str | None = Field(default=None)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
