"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Application store backend: "memory" for a single process, "mongo" for production
    store_backend: Literal["memory", "mongo"] = "memory"

    # MongoDB (application documents)
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "internlink"
    mongodb_applications_collection: str = "applications"

    # PostgreSQL (postings, companies, student profiles - read only)
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "internlink_user"
    postgres_password: str = "password"
    postgres_db: str = "internlink_db"

    # JWT (tokens are issued by the identity service)
    jwt_secret_key: str = "change-this-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440

    # Workflow policy
    max_resume_bytes: int = 500_000
    min_review_note_length: int = 20

    # App
    log_level: str = "INFO"
    debug: bool = False

    @property
    def postgres_url(self) -> str:
        """Construct PostgreSQL connection URL"""
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
