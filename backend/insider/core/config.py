"""
Configuration management using Pydantic Settings
"""
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# config.py is at: backend/insider/core/config.py
_current_file = Path(__file__).resolve()
_backend_dir = _current_file.parent.parent.parent
_project_root = _backend_dir.parent
ENV_FILE = _project_root / ".env"
if not ENV_FILE.exists():
    ENV_FILE = _backend_dir / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Claude Insider"
    app_env: str = Field(default="development", description="Application environment")
    log_level: str = Field(default="INFO", description="Logging level")
    api_host: str = Field(default="0.0.0.0", description="API host")
    api_port: int = Field(default=8000, ge=1, le=65535, description="API port")
    site_url: str = Field(default="https://www.claudeinsider.com", description="Public site URL")
    allowed_origins: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # Logging
    log_sqlalchemy: bool = Field(default=False, description="Enable SQLAlchemy query logging")
    log_uvicorn_access: bool = Field(default=False, description="Enable Uvicorn access logging")
    log_module_levels: Optional[str] = Field(
        default=None,
        description='Module-specific log levels (JSON string, e.g., {"insider.api": "DEBUG"})'
    )
    log_format: str = Field(
        default="json",
        description="Log format: 'json' for structured logging, 'text' for plain text"
    )
    log_file_enabled: bool = Field(default=True, description="Enable file logging")
    log_file_path: str = Field(
        default="logs/insider.log",
        description="Path to log file (relative to project root)"
    )
    log_file_rotation: str = Field(
        default="midnight",
        description="Log file rotation: 'midnight' or 'W0'..'W6' (weekly)"
    )
    log_file_retention: int = Field(default=30, ge=1, description="Number of days to keep log files")
    log_sensitive_data: bool = Field(
        default=False,
        description="Enable logging of sensitive data (passwords, tokens, key material) - NOT RECOMMENDED"
    )

    # Database
    database_url_override: Optional[str] = Field(
        default=None,
        validation_alias="DATABASE_URL",
        description="Full SQLAlchemy URL, takes precedence over POSTGRES_* parts"
    )
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_db: str = Field(default="claude_insider", description="PostgreSQL database name")
    postgres_user: str = Field(default="postgres", description="PostgreSQL user")
    postgres_password: str = Field(default="postgres", description="PostgreSQL password")
    postgres_port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    database_pool_size: int = Field(default=20, ge=1, description="Database pool size")
    database_max_overflow: int = Field(default=10, ge=0, description="Database max overflow")

    # Sessions
    session_duration_hours: int = Field(default=24 * 7, ge=1, description="Login session lifetime (hours)")
    session_cookie_secure: bool = Field(default=False, description="Mark session cookie as Secure")

    # LLM (Anthropic Messages API)
    anthropic_api_key: Optional[str] = Field(default=None, description="Site-wide Anthropic API key")
    anthropic_base_url: str = Field(default="https://api.anthropic.com", description="Anthropic API base URL")
    anthropic_version: str = Field(default="2023-06-01", description="anthropic-version header")
    llm_model: str = Field(default="claude-sonnet-4-20250514", description="Default model")
    llm_max_tokens: int = Field(default=1024, ge=50, le=8192, description="Max tokens for assistant answers")
    llm_mention_max_tokens: int = Field(default=300, ge=50, le=2000, description="Max tokens for DM mentions")
    llm_timeout_seconds: int = Field(default=60, ge=5, le=300, description="LLM request timeout (seconds)")

    # Text-to-speech
    tts_api_url: str = Field(default="https://api.elevenlabs.io/v1/text-to-speech", description="TTS API URL")
    tts_api_key: Optional[str] = Field(default=None, description="TTS API key")
    tts_default_voice: str = Field(default="21m00Tcm4TlvDq8ikWAM", description="Default TTS voice id")
    tts_max_chars: int = Field(default=5000, ge=1, description="Max characters per TTS request")

    # RAG
    rag_docs_dir: str = Field(default="docs", description="Documentation directory (relative to backend/)")
    rag_max_chunk_chars: int = Field(default=1500, ge=100, description="Max characters per chunk")
    rag_min_section_chars: int = Field(default=50, ge=0, description="Skip sections shorter than this")
    rag_top_k: int = Field(default=5, ge=1, le=20, description="Chunks returned per query")

    # E2EE
    sas_expiry_minutes: int = Field(default=10, ge=1, description="SAS verification lifetime (minutes)")
    prekey_low_watermark: int = Field(default=10, ge=0, description="Replenish prekeys below this count")
    prekey_upload_limit: int = Field(default=100, ge=1, description="Max prekeys per upload")
    megolm_rotation_messages: int = Field(default=100, ge=1, description="Rotate Megolm session after N messages")
    megolm_rotation_days: int = Field(default=7, ge=1, description="Rotate Megolm session after N days")

    # Discovery queue
    discovery_bulk_limit: int = Field(default=100, ge=1, description="Max items per bulk action")

    @property
    def database_url(self) -> str:
        """Construct database URL"""
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    @property
    def rag_docs_path(self) -> Path:
        path = Path(self.rag_docs_dir)
        if not path.is_absolute():
            path = _backend_dir / path
        return path

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE.exists() else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_ignore_empty=True,
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
