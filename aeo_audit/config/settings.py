"""Configuration settings using Pydantic Settings."""

from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from aeo_audit.utils.exceptions import ConfigurationError

# Find .env file - look in project root first, then the working directory
_project_root = Path(__file__).parent.parent.parent
_env_file = _project_root / ".env"

_cwd_env_file = Path.cwd() / ".env"
if not _env_file.exists() and _cwd_env_file.exists():
    _env_file = _cwd_env_file


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=str(_env_file) if _env_file.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )

    # PostgreSQL
    postgres_host: str = "localhost"
    postgres_port: int = 5432
    postgres_db: str = "aeo_audit"
    postgres_user: str = "aeo_user"
    postgres_password: str = "change_me_strong_password"
    # Full SQLAlchemy URL; overrides the postgres_* fields when set
    database_url_override: Optional[str] = None

    @property
    def database_url(self) -> str:
        """Construct the async database URL."""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    # Crawl provider (Firecrawl)
    firecrawl_api_key: Optional[str] = None
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    firecrawl_timeout_seconds: float = 30.0
    crawl_max_depth: int = 5
    default_max_pages: int = 50
    max_pages_limit: int = 500

    # Site-level signal fetching (robots.txt / llms.txt)
    user_agent: str = "AEOAuditBot/1.0 (+https://example.com/bot)"
    site_signal_timeout_seconds: float = 10.0

    # Ollama (diagnostic generator)
    ollama_base_url: str = "http://localhost:11434"
    diagnostic_model: str = "llama3:8b"
    diagnostics_enabled: bool = False
    diagnostic_timeout_seconds: float = 8.0
    diagnostic_concurrency: int = 4

    # Page processing
    page_processing_concurrency: int = 5
    # Run page processing as a background task instead of inside the poll call
    process_in_background: bool = True

    # Time-based progress heuristic (seconds)
    progress_ramp_seconds: int = 30
    progress_mid_seconds: int = 120
    progress_force_seconds: int = 300

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"

    def require_crawl_provider(self) -> None:
        """
        Fail fast when the crawl provider cannot be configured.

        Raises:
            ConfigurationError: If the Firecrawl API key is missing
        """
        if not self.firecrawl_api_key:
            raise ConfigurationError("FIRECRAWL_API_KEY is not configured")
        if not self.firecrawl_base_url:
            raise ConfigurationError("FIRECRAWL_BASE_URL is not configured")


# Global settings instance
settings = Settings()
