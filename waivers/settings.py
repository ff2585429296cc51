"""
Process configuration.

Read once per process from the environment (or a local .env file). The
SendGrid credential is a secret provisioned by the hosting environment; it is
injected into the delivery channel at construction and never mutated.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Organizer address: copied on every waiver email and used as the sender.
# Must be a verified sender in SendGrid.
DEFAULT_ORGANIZER_EMAIL = "rbalakr@gmail.com"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    sendgrid_api_key: Optional[str] = Field(default=None, alias="SENDGRID_API_KEY")
    organizer_email: str = Field(default=DEFAULT_ORGANIZER_EMAIL, alias="ORGANIZER_EMAIL")
    storage_bucket: Optional[str] = Field(default=None, alias="STORAGE_BUCKET")
    database_url: Optional[str] = Field(default=None, alias="DATABASE_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Local emulator only
    emulator_max_attempts: int = Field(default=1, ge=1, alias="EMULATOR_MAX_ATTEMPTS")
    emulator_seed_file: Optional[str] = Field(default=None, alias="EMULATOR_SEED_FILE")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
