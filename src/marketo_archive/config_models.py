"""
Pydantic models for YAML configuration validation.
Provides schema validation with clear error messages for sync configurations.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Mapping, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator


class ConfigError(ValueError):
    """Raised when configuration cannot be loaded or fails validation."""


class MarketoConfig(BaseModel):
    """Connection settings for the Marketo REST API."""
    endpoint: str = Field(..., description="REST endpoint, e.g. https://123-ABC-456.mktorest.com")
    client_id: str = Field(..., min_length=1, description="OAuth2 client id")
    client_secret: str = Field(..., min_length=1, description="OAuth2 client secret")
    page_size: int = Field(200, ge=1, le=200, description="Assets requested per listing page")
    timeout_s: int = Field(30, ge=1, le=600, description="HTTP timeout in seconds")

    @field_validator('endpoint')
    @classmethod
    def validate_endpoint(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('endpoint must be a valid HTTP/HTTPS URL')
        return v.rstrip('/')


class AlfrescoConfig(BaseModel):
    """Connection settings for the Alfresco repository."""
    url: str = Field(..., description="Repository base URL, e.g. https://alfresco.example.com")
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)
    base_path: str = Field("/Company Home/Marketo Emails", description="Archive root folder")
    timeout_s: int = Field(60, ge=1, le=600, description="HTTP timeout in seconds")

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(('http://', 'https://')):
            raise ValueError('url must be a valid HTTP/HTTPS URL')
        return v.rstrip('/')


class SyncConfig(BaseModel):
    """Incremental sync behavior."""
    lookback_days: int = Field(90, ge=1, le=3650, description="Window used when no watermark exists")
    item_delay_ms: int = Field(100, ge=0, le=60000, description="Pause after each item in milliseconds")
    batch_size: int = Field(50, ge=1, le=10000, description="Items per progress-log batch")
    property_prefix: str = Field("mkto", min_length=1, description="Namespace prefix of archived properties")
    marker_name: str = Field(".sync-state.json", min_length=1, description="Name of the watermark node")


class RetryConfig(BaseModel):
    """Backoff settings applied to every outbound call."""
    max_attempts: int = Field(3, ge=1, le=20)
    initial_delay_ms: int = Field(1000, ge=0, le=600000)
    max_delay_ms: int = Field(30000, ge=0, le=3600000)
    multiplier: float = Field(2.0, ge=1.0, le=10.0)

    @model_validator(mode='after')
    def validate_delays(self):
        if self.max_delay_ms < self.initial_delay_ms:
            raise ValueError('max_delay_ms cannot be lower than initial_delay_ms')
        return self


class ScheduleConfig(BaseModel):
    """Configuration for scheduled execution."""
    enabled: bool = Field(False, description="Whether scheduling is enabled")
    interval_hours: int = Field(24, ge=1, le=168, description="Interval between runs in hours")


class ArchiveConfig(BaseModel):
    """Root configuration model for the archive sync."""
    marketo: MarketoConfig
    alfresco: AlfrescoConfig
    sync: SyncConfig = Field(default_factory=SyncConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    logging_config: Optional[str] = Field("configs/logging.yaml", description="dictConfig YAML for logging")
    log_level: Optional[str] = Field(None, description="Override for the package log level")

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        if v is None:
            return v
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError('log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL')
        return v.upper()


# (section, key) <- environment variable
ENV_OVERRIDES = {
    "MARKETO_ENDPOINT": ("marketo", "endpoint"),
    "MARKETO_CLIENT_ID": ("marketo", "client_id"),
    "MARKETO_CLIENT_SECRET": ("marketo", "client_secret"),
    "ALFRESCO_URL": ("alfresco", "url"),
    "ALFRESCO_USERNAME": ("alfresco", "username"),
    "ALFRESCO_PASSWORD": ("alfresco", "password"),
    "ALFRESCO_BASE_PATH": ("alfresco", "base_path"),
    "SYNC_LOOKBACK_DAYS": ("sync", "lookback_days"),
    "SYNC_BATCH_SIZE": ("sync", "batch_size"),
    "SYNC_ITEM_DELAY_MS": ("sync", "item_delay_ms"),
}


def apply_env_overrides(raw: Dict[str, Any], environ: Mapping[str, str]) -> Dict[str, Any]:
    """Overlay non-empty environment variables onto the raw config mapping."""
    merged = {k: (dict(v) if isinstance(v, dict) else v) for k, v in (raw or {}).items()}
    for env_name, (section, key) in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value:
            merged.setdefault(section, {})
            if not isinstance(merged[section], dict):
                merged[section] = {}
            merged[section][key] = value
    return merged


def load_and_validate_config(
    config_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    dotenv_path: Optional[str] = None,
) -> ArchiveConfig:
    """
    Load and validate the sync configuration.

    Values come from the YAML file (when given), overlaid with environment
    variables. A ``.env`` file is read into the process environment first
    unless an explicit `environ` mapping is supplied.

    Raises:
        ConfigError: If the file is missing, the YAML is malformed, or
            validation fails.
    """
    raw: Dict[str, Any] = {}
    if config_path:
        try:
            with open(config_path, 'r', encoding='utf-8') as f:
                raw = yaml.safe_load(f) or {}
        except FileNotFoundError:
            raise ConfigError(f"Configuration file not found: {config_path}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}")
        if not isinstance(raw, dict):
            raise ConfigError(f"Configuration root must be a mapping: {config_path}")

    if environ is None:
        load_dotenv(dotenv_path)
        environ = os.environ

    try:
        return ArchiveConfig(**apply_env_overrides(raw, environ))
    except ValidationError as e:
        # Format validation errors nicely
        error_messages = []
        for error in e.errors():
            field_path = '.'.join(str(loc) for loc in error['loc'])
            error_messages.append(f"  {field_path}: {error['msg']}")

        source = config_path or "environment"
        raise ConfigError(
            f"Configuration validation failed for {source}:\n" +
            '\n'.join(error_messages)
        ) from e
