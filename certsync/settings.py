"""Application settings and configuration."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = "development"

    # Local storage
    data_dir: Path = Path("./.certsync")
    database_url: Optional[str] = None
    encryption_key_path: Optional[Path] = None  # Defaults to <data_dir>/encryption.key
    session_path: Optional[Path] = None  # Defaults to <data_dir>/session.json

    # Remote backend (Supabase/PostgREST style)
    remote_url: Optional[str] = None
    remote_api_key: Optional[str] = None
    remote_timeout_seconds: int = 10

    # Sync scheduling
    sync_interval_seconds: float = 30.0
    sync_backoff_max_seconds: float = 600.0
    sync_jitter_seconds: float = 5.0

    # Certificates expiring within this many days are "upcoming"
    upcoming_window_days: int = 30

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def database_url_computed(self) -> str:
        """Compute database URL if not explicitly set."""
        if self.database_url:
            return self.database_url
        return f"sqlite:///{self.data_dir / 'certsync.db'}"

    @property
    def encryption_key_path_computed(self) -> Path:
        """Compute key file location if not explicitly set."""
        if self.encryption_key_path:
            return self.encryption_key_path
        return self.data_dir / "encryption.key"

    @property
    def session_path_computed(self) -> Path:
        """Compute remote session file location if not explicitly set."""
        if self.session_path:
            return self.session_path
        return self.data_dir / "session.json"

    @property
    def remote_enabled(self) -> bool:
        """Check if a remote backend is configured."""
        return bool(self.remote_url and self.remote_api_key)

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() in ("development", "test", "dev")

    def validate_production_settings(self):
        """Validate settings for production environment."""
        if self.is_development:
            return
        if self.remote_url and self.remote_url.startswith("http://"):
            raise ValueError(
                "REMOTE_URL must use https outside development. "
                f"Got {self.remote_url!r}."
            )
        if self.remote_url and not self.remote_api_key:
            raise ValueError("REMOTE_API_KEY is required when REMOTE_URL is set.")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
