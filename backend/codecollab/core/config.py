"""
CodeCollab - Configuration Management

Centralized configuration loaded from the environment and an optional .env file.
"""

from typing import Annotated, List
import json
import os
import tempfile

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings and configuration using Pydantic."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)

    # Application metadata
    PROJECT_NAME: str = "CodeCollab"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # Security
    SECRET_KEY: str = "change_this_dev_secret"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7  # 7 days
    ALGORITHM: str = "HS256"

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["*"]

    # Database
    DATABASE_URL: str = "sqlite:///./codecollab.db"

    # Code execution
    SCRATCH_DIR: str = os.path.join(tempfile.gettempdir(), "code-runner")
    CLEANUP_ARTIFACTS: bool = True
    STREAM_CHUNK_SIZE: int = 4096
    EVENT_CHANNEL_LIMIT: int = 256

    # Toolchain binaries, resolved on PATH
    PYTHON_BIN: str = "python3"
    NODE_BIN: str = "node"
    GCC_BIN: str = "gcc"
    GXX_BIN: str = "g++"
    JAVAC_BIN: str = "javac"
    JAVA_BIN: str = "java"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, str):
            return json.loads(v)
        elif isinstance(v, list):
            return v
        raise ValueError(v)


# Create settings instance
settings = Settings()

# Environment-specific overrides
if settings.ENVIRONMENT == "production":
    settings.DEBUG = False
    settings.LOG_LEVEL = "WARNING"
