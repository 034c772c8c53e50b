"""Service configuration.

Settings are read once at startup and passed down by parameter. Sources,
highest priority first:

1. Keyword arguments to ``load_settings``.
2. Environment variables ``ARCHIVES__<SECTION>__<KEY>``
   (e.g. ``ARCHIVES__API__PORT=9000``).
3. ``config.local.toml`` in the working directory.
4. ``config.toml`` in the working directory.
5. Built-in defaults. The ClickHouse section also falls back to the
   conventional ``CLICKHOUSE_URL``, ``CLICKHOUSE_DATABASE``,
   ``CLICKHOUSE_USERNAME`` and ``CLICKHOUSE_PASSWORD`` variables.
"""

import os
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from archives.adapters.storage.clickhouse import (
    DEFAULT_DATABASE,
    DEFAULT_TIMEOUT_SECS,
    DEFAULT_URL,
    DEFAULT_USERNAME,
)
from archives.adapters.storage.sqlite_base import MEMORY_PATH
from archives.core.errors import ConfigError

CONFIG_FILES = ("config.toml", "config.local.toml")

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _env_or(name: str, default: str) -> Any:
    return Field(default_factory=lambda: os.environ.get(name, default))


class _Section(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ClickHouseSettings(_Section):
    url: str = _env_or("CLICKHOUSE_URL", DEFAULT_URL)
    database: str = _env_or("CLICKHOUSE_DATABASE", DEFAULT_DATABASE)
    username: str = _env_or("CLICKHOUSE_USERNAME", DEFAULT_USERNAME)
    password: str = _env_or("CLICKHOUSE_PASSWORD", "")
    timeout_secs: float = Field(default=DEFAULT_TIMEOUT_SECS, gt=0)


class SQLiteSettings(_Section):
    path: str = MEMORY_PATH


class StoreSettings(_Section):
    backend: Literal["clickhouse", "sqlite"] = "clickhouse"


class ApiSettings(_Section):
    host: str = "0.0.0.0"
    port: int = Field(default=8080, gt=0, lt=65536)
    timeout_secs: float = Field(default=30.0, gt=0)


class McpSettings(_Section):
    host: str = "0.0.0.0"
    port: int = Field(default=8081, gt=0, lt=65536)
    enabled: bool = True


class LoggingSettings(_Section):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    level: LogLevel = "INFO"
    json_output: bool = Field(default=False, alias="json")

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value


class Settings(BaseSettings):
    """Immutable settings for both services."""

    model_config = SettingsConfigDict(
        frozen=True,
        env_prefix="ARCHIVES__",
        env_nested_delimiter="__",
        toml_file=CONFIG_FILES,
        extra="ignore",
    )

    clickhouse: ClickHouseSettings = Field(default_factory=ClickHouseSettings)
    sqlite: SQLiteSettings = Field(default_factory=SQLiteSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    api: ApiSettings = Field(default_factory=ApiSettings)
    mcp: McpSettings = Field(default_factory=McpSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, env_settings, TomlConfigSettingsSource(settings_cls))


def load_settings(**overrides: Any) -> Settings:
    """Build Settings from all sources.

    Args:
        **overrides: Section values taking priority over every other source,
            e.g. ``store={"backend": "sqlite"}``.

    Raises:
        ConfigError: A source holds an invalid or unreadable value.
    """
    try:
        return Settings(**overrides)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigError(problems) from e
    except ValueError as e:
        # tomllib.TOMLDecodeError
        raise ConfigError(str(e)) from e
