"""Application settings, read from the environment via pydantic-settings.

The JWT signing key is generated once per process unless JWT_SECRET is set.
Tokens issued by a previous process stop verifying after a restart.
"""

import secrets
from functools import lru_cache
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _generate_secret() -> str:
    return secrets.token_hex(32)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Database
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "shop"

    # Auth
    jwt_secret: str = Field(default_factory=_generate_secret)
    jwt_algorithm: str = "HS256"
    token_ttl_days: int = 3
    bcrypt_rounds: int = 10

    # API
    customers_page_size: int = 3
    cors_origins: List[str] = ["*"]
    port: int = 8000

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
