"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Constructor arguments
  2. Environment variables  (PRESERVICA__API__URL=https://...)
  3. preservica.yaml        (searched in cwd, then platform config dir)
  4. Hardcoded defaults

The config file is optional; only ``api.url`` and ``api.secret_name`` have
no usable default.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_CACHE_DIR = platformdirs.user_cache_dir("preservica-client")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_CACHE_DIR) / "token-cache.db")

DEFAULT_SECRETS_MANAGER_ENDPOINT = "https://secretsmanager.eu-west-2.amazonaws.com"


def _find_config_file() -> str | None:
    """Return the path of the first preservica.yaml found, or None."""
    candidates = [
        Path("preservica.yaml"),
        Path(platformdirs.user_config_dir("preservica-client")) / "preservica.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ApiSettings(BaseModel):
    url: str = ""
    secret_name: str = ""


class AuthSettings(BaseModel):
    token_ttl_minutes: float = 15
    secrets_manager_endpoint: str = DEFAULT_SECRETS_MANAGER_ENDPOINT
    region: str = "eu-west-2"


class RetrySettings(BaseModel):
    max_retries: int = 5
    base_delay_seconds: float = 1.0


class HttpSettings(BaseModel):
    # Applies to metadata/XML calls; bitstream downloads never time out on read.
    timeout_seconds: float = 30.0
    connect_timeout_seconds: float = 5.0
    max_connections: int = 10


class CacheSettings(BaseModel):
    backend: Literal["memory", "sqlite"] = "memory"
    db_path: str = _DEFAULT_DB_PATH


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: PRESERVICA__RETRY__MAX_RETRIES=3
        env_prefix="PRESERVICA__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    api: ApiSettings = ApiSettings()
    auth: AuthSettings = AuthSettings()
    retry: RetrySettings = RetrySettings()
    http: HttpSettings = HttpSettings()
    cache: CacheSettings = CacheSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(settings_cls),
            # dotenv and file secrets intentionally excluded
        )
