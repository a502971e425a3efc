"""Configuration management for sanctuary.

Loads settings from a YAML configuration file with environment variable
overrides for sensitive values (API keys, service URLs). Supports .env files.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/sanctuary.yaml")


class BrowserConfig(BaseModel):
    base_url: str = Field(default="https://production-sfo.browserless.io")
    request_timeout: float = Field(default=30.0, gt=0, description="Seconds to wait for a scrape/screenshot")
    navigation_timeout_ms: int = Field(default=30000, gt=0)
    wait_for_ms: int = Field(default=3000, ge=0)


class StorageConfig(BaseModel):
    backend: Literal["supabase", "memory"] = Field(default="supabase")
    supabase_url: str = Field(default="")
    bucket: str = Field(default="private-library")
    timeout: float = Field(default=30.0, gt=0)


class FallbackConfig(BaseModel):
    min_payload_bytes: int = Field(default=1000, ge=0)
    max_payload_bytes: int = Field(default=200 * 1024 * 1024, gt=0, description="Downloads larger than this are abandoned")
    min_signed_url_seconds: int = Field(default=300, gt=0)
    download_timeout: float = Field(default=60.0, gt=0)
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
    )


class TimerConfig(BaseModel):
    persist_interval: int = Field(default=30, gt=0, description="Elapsed seconds between duration writes")
    warning_threshold: int = Field(default=60, gt=0)
    embed_load_timeout: float = Field(default=8.0, gt=0)


class DatabaseConfig(BaseModel):
    url: str = Field(default="sqlite:///sanctuary.db")
    echo: bool = Field(default=False)


class ServerConfig(BaseModel):
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000, ge=1, le=65535)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the sanctuary services.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "SANCTUARY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    # API Keys
    browserless_api_key: SecretStr = Field(default=SecretStr(""))
    supabase_service_key: SecretStr = Field(default=SecretStr(""))

    # Configuration sections
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    timer: TimerConfig = Field(default_factory=TimerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigurationError(Exception):
    """Raised at startup when a required setting is missing."""


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    # Load .env file manually for non-prefixed vars
    _load_dotenv()

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    else:
        logger.warning("Config file %s not found, using defaults + env vars", path)

    _apply_env_overrides(yaml_data)

    return Settings(**yaml_data)


def _load_dotenv() -> None:
    """Load .env file into os.environ if it exists."""
    env_path = Path(".env")
    if not env_path.exists():
        return
    with open(env_path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" in line:
                key, _, value = line.partition("=")
                key = key.strip()
                value = value.strip()
                if not os.environ.get(key):
                    os.environ[key] = value


def _apply_env_overrides(yaml_data: dict) -> None:
    """Map the hosted-function environment names onto the settings tree."""
    browserless_key = os.environ.get("BROWSERLESS_API_KEY", "")
    supabase_url = os.environ.get("SUPABASE_URL", "")
    service_key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY", "")

    if browserless_key:
        yaml_data["browserless_api_key"] = browserless_key
    if service_key:
        yaml_data["supabase_service_key"] = service_key

    if "storage" not in yaml_data:
        yaml_data["storage"] = {}

    if supabase_url and not yaml_data["storage"].get("supabase_url"):
        yaml_data["storage"]["supabase_url"] = supabase_url
