"""Configuration management using pydantic-settings."""

from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict
from pydantic import Field, field_validator
from pathlib import Path
from typing import Annotated, List
import os


def _default_cors_origins() -> List[str]:
    """Build CORS defaults, honouring FRONTEND_PORT when set."""
    frontend_port = os.getenv("FRONTEND_PORT", "").strip()
    origins = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]
    if frontend_port:
        origins = [
            f"http://localhost:{frontend_port}",
            f"http://127.0.0.1:{frontend_port}",
            *origins,
        ]
    return origins


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "127.0.0.1"
    api_port: int = 8765

    # Storage Configuration
    data_dir: Path = Path("data")
    agents_store_path: Path = Path("data/history/agents.yaml")
    images_dir: Path = Path("data/images")
    files_dir: Path = Path("data/files")

    # Completion service
    completion_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    completion_model: str = "gemini-2.0-flash"
    completion_api_key: str = ""
    completion_temperature: float = 0.7

    # External API triggers
    enable_external_api: bool = True
    external_api_timeout_seconds: float = 30.0

    # AutoAssist
    auto_assist_agent_mode: bool = False

    # CORS Configuration
    # Comma-separated in the environment
    cors_origins: Annotated[List[str], NoDecode] = Field(default_factory=_default_cors_origins)

    # Logging
    log_level: str = "INFO"
    logs_dir: Path = Path("logs")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, value):
        if value in (None, ""):
            return _default_cors_origins()
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value


# Global settings instance
settings = Settings()
