"""
Application configuration utilities.

This module defines the ``Settings`` class used throughout the service for
environment variables and provides helper functions to load YAML files
containing the forecasting constants and recommendation defaults.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Mapping

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # API server configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    cors_origins: str = ""

    # Location of the historical tables and the YAML business rules
    data_dir: str = "data"
    config_dir: str = "configs"

    # Tenant used when a request carries no X-Tenant-ID header
    default_tenant_id: str = "default"

    # API_TOKEN and RATE_LIMIT_PER_MIN are read by the request middleware.


@lru_cache(maxsize=None)
def get_settings() -> Settings:
    """Return a cached instance of ``Settings``.

    Using a cache ensures that environment variables are only read once.
    """
    return Settings()


def load_yaml(file_path: str) -> dict:
    """Load a YAML file from the given path and return its contents.

    If the file does not exist, an empty dictionary is returned.
    """
    if not os.path.exists(file_path):
        return {}
    with open(file_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_section(config_root: str, section: str) -> dict[str, Any]:
    """Return one mapping section of ``settings.yaml`` (empty when absent)."""

    settings = load_yaml(os.path.join(config_root, "settings.yaml"))
    value = settings.get(section) if isinstance(settings, Mapping) else None
    return dict(value) if isinstance(value, Mapping) else {}
