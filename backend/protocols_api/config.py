"""
Configuration settings for the protocols API.

Reads credentials from the project .env file and provides typed settings.
"""

from pathlib import Path
from typing import List, Optional
from functools import lru_cache

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Resolve paths
PACKAGE_DIR = Path(__file__).parent
BACKEND_DIR = PACKAGE_DIR.parent
PROJECT_ROOT = BACKEND_DIR.parent
ENV_FILE = PROJECT_ROOT / ".env"


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database - PostgreSQL in production, SQLite for local runs
    database_url: str = Field(
        default="sqlite:///./protocols.db",
        alias="DATABASE_URL",
        description="SQLAlchemy connection URL"
    )

    # JWT authentication
    jwt_secret: str = Field(
        default="change-me-in-production",
        alias="JWT_SECRET",
        description="Secret used to sign access tokens"
    )
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_expires_hours: int = Field(
        default=24 * 7,
        alias="JWT_EXPIRES_HOURS",
        description="Access token lifetime in hours"
    )

    # OpenAI (clinical history generation)
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str = Field(default="gpt-4", alias="OPENAI_MODEL")
    openai_timeout_seconds: float = Field(
        default=60.0,
        alias="OPENAI_TIMEOUT_SECONDS",
        description="Timeout for a single text generation call"
    )

    # CORS
    cors_origins: str = Field(
        default="http://localhost:5173",
        alias="CORS_ORIGINS",
        description="Comma separated list of allowed origins"
    )

    # Application settings
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Basic visit template, auto-imported into every new visit
    basic_template_name: str = Field(
        default="Visita Basica",
        alias="BASIC_TEMPLATE_NAME",
        description="Name of the template imported into every new visit"
    )

    # Optimistic concurrency on protocol documents
    max_conflict_retries: int = Field(
        default=3,
        alias="MAX_CONFLICT_RETRIES",
        description="Max read-modify-write attempts on a version conflict"
    )
    conflict_retry_base_delay: float = Field(
        default=0.1,
        alias="CONFLICT_RETRY_BASE_DELAY",
        description="Delay in seconds multiplied by the attempt number"
    )

    # Pagination
    default_page_size: int = Field(default=10, description="Default page size for list endpoints")
    max_page_size: int = Field(default=100, description="Largest accepted page size")

    @property
    def allowed_origins(self) -> List[str]:
        """CORS origins as a list, trailing slashes removed."""
        return [
            origin.strip().rstrip("/")
            for origin in self.cors_origins.split(",")
            if origin.strip()
        ]

    @computed_field
    @property
    def prompts_dir(self) -> Path:
        """Path to prompts directory."""
        return PACKAGE_DIR / "prompts"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience accessors
settings = get_settings()
