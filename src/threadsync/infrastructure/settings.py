"""Application settings using Pydantic Settings for configuration management."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    app_name: str = "Threadsync"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: str = "INFO"

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080

    # Storage
    storage_backend: Literal["memory", "postgres"] = "memory"

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_user: str = "postgres"
    postgres_password: SecretStr = Field(default=SecretStr("postgres"))
    postgres_db: str = "threadsync"
    postgres_pool_min_size: int = 1
    postgres_pool_max_size: int = 10

    # Sync
    sync_default_days: int = Field(default=7, ge=1, le=365)
    fetch_concurrency: int = Field(default=8, ge=1)
    reconcile_chunk_size: int = Field(default=50, ge=1)
    max_merge_attempts: int = Field(default=2, ge=1)
    classify_outbound: bool = False

    # Providers
    gmail_api_base_url: str = "https://gmail.googleapis.com/gmail/v1"
    graph_api_base_url: str = "https://graph.microsoft.com/v1.0"
    provider_timeout_seconds: float = 30.0
    # JSON object: {"gmail:me@example.com": "<access token>", ...}
    provider_tokens: dict[str, SecretStr] = Field(default_factory=dict)

    # Worker
    worker_poll_interval: int = 60
    # Comma separated "user@example.com:gmail" pairs
    worker_mailboxes: str = ""

    @computed_field
    @property
    def postgres_dsn(self) -> str:
        """Construct PostgreSQL connection string."""
        password = self.postgres_password.get_secret_value()
        return f"postgresql://{self.postgres_user}:{password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    def mailboxes(self) -> list[tuple[str, str]]:
        """Parse worker_mailboxes into (user_email, provider) pairs."""
        pairs = []
        for item in self.worker_mailboxes.split(","):
            item = item.strip()
            if not item:
                continue
            user_email, sep, provider = item.rpartition(":")
            if not sep or not user_email or not provider:
                raise ValueError(f"Invalid mailbox entry {item!r}, expected user@example.com:provider")
            pairs.append((user_email.strip().lower(), provider.strip().lower()))
        return pairs


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
