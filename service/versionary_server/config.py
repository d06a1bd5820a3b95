"""
Configuration for the Versionary API server.

All configuration is done via environment variables (prefix VERSIONARY_),
loaded with pydantic-settings. Every setting has a default suitable for
local development.

Invariants:
    - Settings are loaded once at startup and passed explicitly to create_app()
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep strict_bearer_validation and expose_internal_errors documented in DESIGN.md
"""

from __future__ import annotations

import logging
import os

from pydantic import Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("json", "text")


class Settings(BaseSettings):
    """Server configuration loaded from environment."""

    # Application identity, reported by /about
    name: str = Field(default="Versionary API", description="Application name")
    base_domain: str = Field(default="localhost", description="Base domain of the deployment")
    environment: str = Field(default="dev", description="Operating environment (dev, qa, prod)")
    description: str = Field(
        default="Versioned entity management API",
        description="Application description",
    )
    git_hash: str = Field(default="", description="Git commit of the running build")
    build_time: str = Field(default="", description="Build timestamp of the running build")

    # Storage
    data_dir: str = Field(default="/var/lib/versionary", description="Directory for SQLite tables")
    sqlite_wal_mode: bool = Field(default=True, description="Enable SQLite WAL mode")
    sqlite_busy_timeout_ms: int = Field(default=5000, description="SQLite busy timeout")

    # Authentication
    strict_bearer_validation: bool = Field(
        default=True,
        description="Reject requests carrying an unresolvable bearer token with 401",
    )
    token_lifetime_days: int = Field(default=30, description="Bearer token lifetime in days")
    bcrypt_rounds: int = Field(default=12, description="bcrypt cost factor for password hashes")

    # Error reporting
    expose_internal_errors: bool = Field(
        default=False,
        description="Include raw internal error text in 500 responses",
    )

    # HTTP
    host: str = Field(default="0.0.0.0", description="Bind host")
    port: int = Field(default=8080, description="Bind port")
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )

    # Observability
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log format (json, text)")

    model_config = {"env_prefix": "VERSIONARY_"}

    def validate_settings(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(
                f"Invalid VERSIONARY_LOG_LEVEL '{self.log_level}'. Must be one of: "
                + ", ".join(LOG_LEVELS)
            )
        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid VERSIONARY_LOG_FORMAT '{self.log_format}'. Must be json or text")
        if self.token_lifetime_days < 1:
            raise ValueError("VERSIONARY_TOKEN_LIFETIME_DAYS must be at least 1")
        if not 4 <= self.bcrypt_rounds <= 31:
            raise ValueError("VERSIONARY_BCRYPT_ROUNDS must be between 4 and 31")
        if not self.data_dir:
            raise ValueError("VERSIONARY_DATA_DIR is required")

        if not os.path.exists(self.data_dir):
            logger.warning(
                f"Data directory does not exist: {self.data_dir}. It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "app_name": self.name,
                "environment": self.environment,
                "data_dir": self.data_dir,
                "strict_bearer_validation": self.strict_bearer_validation,
                "expose_internal_errors": self.expose_internal_errors,
                "log_level": self.log_level,
            },
        )
