"""Configuration models."""

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class EnvSettings(BaseSettings):
    """Settings loaded from .env file (secrets and credentials)."""

    store_api_token: Optional[str] = Field(
        None, description="Bearer token shared by the store service and its clients"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


class AppConfig(BaseModel):
    """Application configuration from config.yaml."""

    # Store selection
    store_backend: Literal["local", "http"] = Field(
        default="local",
        description="'local' reads and writes YAML files directly; 'http' talks to a store service",
    )
    store_url: str = Field(
        default="http://127.0.0.1:8000", description="Base URL of the store service"
    )
    storage_path: Optional[str] = Field(
        None, description="Directory holding bookmark files (local backend and store service)"
    )
    request_timeout_seconds: float = Field(default=10.0, ge=0.5, le=120.0)

    # Store service settings
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    feed_heartbeat_seconds: float = Field(
        default=15.0, ge=1.0, le=300.0, description="Idle interval between change-feed heartbeats"
    )

    # Cross-tab signal
    signal_key: str = Field(default="bookmark-update", description="Shared signal slot name")
    signal_poll_interval_ms: int = Field(default=250, ge=10, le=10000)

    # List behaviour
    refresh_on_add: bool = Field(
        default=True, description="Bulk fetch the list after the form adds a bookmark"
    )
    rollback_failed_deletes: bool = Field(
        default=False,
        description="Reinsert a bookmark locally when its delete fails at the store",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "store_backend": "http",
            "store_url": "http://127.0.0.1:8000",
            "storage_path": "/home/user/.livemarks/storage",
            "host": "127.0.0.1",
            "port": 8000,
            "signal_key": "bookmark-update",
            "signal_poll_interval_ms": 250,
            "refresh_on_add": True,
            "rollback_failed_deletes": False,
            "log_level": "INFO",
        }
    })

    @field_validator("signal_key")
    @classmethod
    def validate_signal_key(cls, v: str) -> str:
        """Validate signal key is usable as a file name."""
        import re

        if not re.match(r'^[a-zA-Z0-9_.-]+$', v):
            raise ValueError(
                "Signal key must contain only letters, numbers, dots, dashes, and underscores"
            )

        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize log level name."""
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")

        return level
