"""
FeedMill Configuration System
============================

Configuration management with Pydantic models. Values come from, in order
of precedence: explicit keyword arguments, environment variables
(``FEEDMILL_`` prefix, ``__`` for nesting), a ``.env`` file, the TOML
config file and finally the Field defaults.
"""

import os
from pathlib import Path
from typing import Optional, Tuple, Type
from enum import Enum

from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

from ..utils.exceptions import ConfigurationError, ErrorCode

APP_DIR_NAME = "feedmill"
CONFIG_FILE_NAME = "feedmill.toml"
CACHE_FILE_NAME = "cache.db"


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def _xdg_dir(env_var: str, fallback: str) -> Path:
    """Resolve an XDG base directory, falling back to a path under $HOME."""
    value = os.environ.get(env_var)
    if value:
        return Path(value).expanduser()
    return Path.home() / fallback


def default_config_path() -> Path:
    """Default TOML config location: $XDG_CONFIG_HOME/feedmill/feedmill.toml."""
    return _xdg_dir("XDG_CONFIG_HOME", ".config") / APP_DIR_NAME / CONFIG_FILE_NAME


def default_cache_path() -> str:
    """Default cache database location: $XDG_CACHE_HOME/feedmill/cache.db."""
    return str(_xdg_dir("XDG_CACHE_HOME", ".cache") / APP_DIR_NAME / CACHE_FILE_NAME)


class LimitsSettings(BaseModel):
    """Network limits for feed fetching."""
    request_timeout: int = Field(default=30, ge=1, le=300, description="Per-feed request timeout in seconds")
    max_concurrent_fetches: int = Field(default=8, ge=1, le=64, description="Concurrent feed fetches")

    model_config = {"frozen": True}


class DatabaseSettings(BaseModel):
    """Cache database configuration."""
    path: str = Field(default_factory=default_cache_path, description="SQLite cache file path")
    pool_size: int = Field(default=2, ge=1, le=10, description="Connection pool size")

    model_config = {"frozen": True}


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging on the console")
    console_logging: bool = Field(default=True, description="Enable console logging")

    model_config = {"frozen": True}


class FeedMillSettings(BaseSettings):
    """Main application settings."""

    sources: Tuple[str, ...] = Field(default=(), description="Feed URLs, in configured order")
    update_interval: int = Field(default=300, ge=1, description="Seconds between update cycles")
    retain_failed_sources: bool = Field(
        default=False,
        description="Keep the previous articles of a source whose fetch failed this cycle",
    )

    limits: LimitsSettings = Field(default_factory=LimitsSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="FeedMill", description="Application name")
    version: str = Field(default="0.3.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_nested_delimiter="__",
        env_prefix="FEEDMILL_",
        extra="ignore",
        frozen=True,
    )

    @field_validator("sources")
    @classmethod
    def normalize_sources(cls, v):
        """Strip whitespace, drop blanks and repeated URLs, keep order."""
        seen = set()
        cleaned = []
        for source in v:
            source = source.strip()
            if source and source not in seen:
                seen.add(source)
                cleaned.append(source)
        return tuple(cleaned)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )

    def validate_configuration(self) -> None:
        """Validate paths that must be writable before the core starts."""
        errors = []

        try:
            db_path = Path(self.database.path).expanduser()
            db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                log_path = Path(self.logging.file_path).expanduser()
                log_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def resolve_config_path(path_arg: Optional[str] = None) -> Path:
    """Locate the TOML config file.

    An explicitly given path must exist. Without one the XDG default is used
    and created empty when missing, so a first run starts with no sources.

    Raises:
        ConfigurationError: If the explicit path does not exist or the
            default file cannot be created
    """
    if path_arg:
        path = Path(path_arg).expanduser()
        if not path.is_file():
            raise ConfigurationError(
                f"{path_arg}: File doesn't exist",
                config_key="config_path",
                error_code=ErrorCode.CONFIG_MISSING,
            )
        return path

    path = default_config_path()
    if not path.is_file():
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch()
        except OSError as e:
            raise ConfigurationError(
                f"Cannot create config file {path}: {e}",
                config_key="config_path",
                error_code=ErrorCode.CONFIG_MISSING,
            ) from e
    return path


def _settings_class_for(config_path: Path) -> Type[FeedMillSettings]:
    """Bind the settings model to a specific TOML file."""

    class FileBackedSettings(FeedMillSettings):
        model_config = SettingsConfigDict(toml_file=config_path)

    return FileBackedSettings


def load_settings(config_path: Optional[str] = None, **overrides) -> FeedMillSettings:
    """Load settings from the TOML file, environment variables and defaults.

    Args:
        config_path: Explicit TOML config path (default: XDG location)
        **overrides: Values taking precedence over every other source

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is missing or invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    path = resolve_config_path(config_path)

    try:
        settings = _settings_class_for(path)(**overrides)
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration in {path}: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e
    except Exception as e:
        # tomllib.TOMLDecodeError and unreadable files end up here
        raise ConfigurationError(
            f"Failed to read configuration {path}: {e}",
            error_code=ErrorCode.CONFIG_PARSE_ERROR
        ) from e


# Global settings instance
_settings: Optional[FeedMillSettings] = None


def get_settings(reload: bool = False, config_path: Optional[str] = None) -> FeedMillSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings
        config_path: Explicit TOML config path used when (re)loading

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings(config_path)

    return _settings
