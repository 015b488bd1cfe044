"""
agentmem Configuration.

Centralized configuration management using Pydantic Settings.
Loads configuration from environment variables.
"""

import os
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_xdg_data_dir() -> str:
    """
    Get XDG-compliant data directory for agentmem.

    Follows XDG Base Directory Specification:
    - Uses $XDG_DATA_HOME/agentmem if XDG_DATA_HOME is set
    - Falls back to $HOME/.local/share/agentmem if not set
    - Returns relative path .agentmem if HOME not available (dev/testing)

    Returns:
        str: Path to data directory
    """
    xdg_data_home = os.getenv("XDG_DATA_HOME")
    if xdg_data_home:
        return str(Path(xdg_data_home) / "agentmem")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "share" / "agentmem")

    # Fallback for development/testing environments without HOME
    return ".agentmem"


def get_xdg_state_dir() -> str:
    """
    Get XDG-compliant state directory for agentmem logs.

    Follows XDG Base Directory Specification:
    - Uses $XDG_STATE_HOME/agentmem if XDG_STATE_HOME is set
    - Falls back to $HOME/.local/state/agentmem if not set
    - Returns relative path ./logs if HOME not available (dev/testing)

    Returns:
        str: Path to state/logs directory
    """
    xdg_state_home = os.getenv("XDG_STATE_HOME")
    if xdg_state_home:
        return str(Path(xdg_state_home) / "agentmem" / "logs")

    home = os.getenv("HOME")
    if home:
        return str(Path(home) / ".local" / "state" / "agentmem" / "logs")

    return "./logs"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = f"sqlite:///{get_xdg_data_dir()}/agentmem.db"
    db_pool_size: int = 5
    db_pool_max_overflow: int = 5
    db_pool_timeout: int = 30
    db_pool_recycle: int = 1800

    # Extraction provider cascade (tried in order, unconfigured entries dropped)
    extraction_providers: list[str] | str = ["openai", "anthropic"]
    extraction_timeout_seconds: float = 60.0
    extraction_max_tokens: int = 2000
    extraction_temperature: float = 0.3

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = ""

    # Anthropic
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-5-20250514"

    # Ollama
    ollama_base_url: str = ""
    ollama_model: str = "llama3.1"

    # Capture
    capture_confidence_threshold: float = 0.7
    capture_min_messages: int = 2
    capture_skip_duplicates: bool = True
    capture_focus_areas: list[str] | str = []  # e.g. "testing,migrations"

    # Message linking
    link_grace_window_seconds: float = 5.0

    # Relevance scoring
    scoring_enabled: bool = True
    scoring_max_workers: int = 2

    # Application
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_dir: str = ""  # Defaults to XDG state dir if empty
    log_format: str = "standard"  # standard or json
    log_console_enabled: bool = True
    log_file_enabled: bool = True
    log_max_bytes: int = 10_485_760  # 10MB per log file
    log_backup_count: int = 5

    # LLM Logging
    llm_logging_enabled: bool = False  # Enable detailed LLM interaction logging
    llm_log_requests: bool = True
    llm_log_responses: bool = True

    @field_validator("extraction_providers", mode="before")
    @classmethod
    def _split_providers(cls, value: list[str] | str) -> list[str]:
        """Accept a comma-separated string (env var) or a list."""
        if isinstance(value, str):
            return [part.strip().lower() for part in value.split(",") if part.strip()]
        return [str(part).strip().lower() for part in value if str(part).strip()]

    @field_validator("capture_focus_areas", mode="before")
    @classmethod
    def _split_focus_areas(cls, value: list[str] | str) -> list[str]:
        """Accept a comma-separated string (env var) or a list, keeping case."""
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return [str(part).strip() for part in value if str(part).strip()]

    @property
    def log_directory(self) -> Path:
        """Get the log directory path, using XDG default if not specified."""
        if self.log_dir:
            return Path(self.log_dir).expanduser()
        return Path(get_xdg_state_dir())


# Global settings instance
settings = Settings()
