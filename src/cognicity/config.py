"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (COGNICITY__DATABASE__DSN=postgres://...)
  2. cognicity.yaml         (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional; all fields have sensible defaults. Everything
here is read once at startup and never mutated afterwards.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

# Plain or schema-qualified identifier: "all_reports", "infrastructure.waterways"
_TABLE_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$")


def _find_config_file() -> str | None:
    """Return the path of the first cognicity.yaml found, or None."""
    candidates = [
        Path("cognicity.yaml"),
        Path(platformdirs.user_config_dir("cognicity")) / "cognicity.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


def _check_table_name(value: str) -> str:
    if not _TABLE_NAME.match(value):
        raise ValueError(f"Invalid table name: {value!r}")
    return value


class ServerSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8081
    url_prefix: str = "banjir"
    root_redirect: str = "banjir"
    public_dir: str | None = None
    robots: str | None = None
    compression: bool = False
    redirect_http: bool = False


class LanguageSettings(BaseModel):
    locale: str = "id"
    default: str = "en"


class ApiSettings(BaseModel):
    data: bool = True
    floodwatch: bool = True
    time_window: int = 3600  # seconds of reports returned by the confirmed feed
    floodgauges_time_window: int = 43200


class DatabaseSettings(BaseModel):
    dsn: str = "postgres://postgres@localhost:5432/cognicity"
    reconnection_attempts: int = Field(default=5, gt=0)
    reconnection_delay_ms: int = Field(default=5000, ge=0)
    limit: int = 1000
    tbl_reports: str = "all_reports"
    infrastructure_tables: dict[str, str] = {
        "waterways": "infrastructure.waterways",
        "pumps": "infrastructure.pumps",
        "floodgates": "infrastructure.floodgates",
        "floodgauges": "floodgauge_reports",
    }
    sensor_data_table: str = "iot.sensor_data"
    sensor_metadata_table: str = "iot.sensor_metadata"
    aggregate_levels: dict[str, str] = {"city": "jkt_city_boundary"}

    @field_validator("tbl_reports", "sensor_data_table", "sensor_metadata_table")
    @classmethod
    def validate_table(cls, v: str) -> str:
        return _check_table_name(v)

    @field_validator("infrastructure_tables", "aggregate_levels")
    @classmethod
    def validate_table_map(cls, v: dict[str, str]) -> dict[str, str]:
        for table in v.values():
            _check_table_name(table)
        return v


class CacheSettings(BaseModel):
    ttl_seconds: float = 60.0
    sweep_interval_seconds: float = 300.0  # 0 disables the background sweep


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"
    instance: str = "cognicity-server"
    log_directory: str | None = None
    max_file_size: int = 1024 * 1024
    max_files: int = 10


class ShutdownSettings(BaseModel):
    flush_timeout_seconds: float = 2.0
    graceful_timeout_seconds: int = 5


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: COGNICITY__SERVER__PORT=9090
        env_prefix="COGNICITY__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    languages: LanguageSettings = LanguageSettings()
    api: ApiSettings = ApiSettings()
    database: DatabaseSettings = DatabaseSettings()
    cache: CacheSettings = CacheSettings()
    logging: LoggingSettings = LoggingSettings()
    shutdown: ShutdownSettings = ShutdownSettings()

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
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
            # dotenv and file secrets intentionally excluded
        )
