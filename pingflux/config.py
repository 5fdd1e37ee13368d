"""Configuration system using Pydantic for validation and type safety."""

from __future__ import annotations

import math
import os
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, field_validator

DEFAULT_TARGET = "8.8.8.8"
DEFAULT_MAX_HOPS = 30
DEFAULT_TIMEOUT_MS = 10000


def _to_positive_int(v: Any, fallback: int) -> int:
    """Coerce to a positive int, or return fallback."""
    if isinstance(v, bool):
        return fallback
    try:
        parsed = float(v)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(parsed) or int(parsed) < 1:
        return fallback
    return int(parsed)


class TracerouteConfig(BaseModel):
    """Traceroute configuration.

    ``max_hops`` and ``timeout_ms`` are ceilings: caller supplied values are
    clamped to them and they are used when the caller supplies nothing.
    """

    default_target: str = DEFAULT_TARGET
    max_hops: int = DEFAULT_MAX_HOPS
    timeout_ms: int = DEFAULT_TIMEOUT_MS
    command: str | None = None

    @field_validator("default_target", mode="before")
    @classmethod
    def validate_default_target(cls, v: Any) -> str:
        """Blank targets fall back to the built-in default."""
        if v is None or not str(v).strip():
            return DEFAULT_TARGET
        return str(v).strip()

    @field_validator("max_hops", mode="before")
    @classmethod
    def validate_max_hops(cls, v: Any) -> int:
        return _to_positive_int(v, DEFAULT_MAX_HOPS)

    @field_validator("timeout_ms", mode="before")
    @classmethod
    def validate_timeout_ms(cls, v: Any) -> int:
        return _to_positive_int(v, DEFAULT_TIMEOUT_MS)

    @field_validator("command", mode="before")
    @classmethod
    def validate_command(cls, v: Any) -> str | None:
        """Blank and placeholder values mean "no override"."""
        if v is None or isinstance(v, bool):
            return None
        v = str(v).strip()
        if not v or v.startswith("<<<"):
            return None
        return v


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = "127.0.0.1"
    port: int = 3000

    @field_validator("port", mode="before")
    @classmethod
    def validate_port(cls, v: Any) -> int:
        return _to_positive_int(v, 3000)


class StorageConfig(BaseModel):
    """SQLite storage configuration."""

    db_path: Path = Path("./data/pingflux.db")

    @field_validator("db_path", mode="before")
    @classmethod
    def resolve_db_path(cls, v: str | Path) -> Path:
        """Resolve relative paths against the working directory."""
        path = Path(v).expanduser()
        if not path.is_absolute():
            path = Path.cwd() / path
        return path


class PingfluxConfig(BaseModel):
    """Main configuration for pingflux."""

    traceroute: TracerouteConfig = TracerouteConfig()
    server: ServerConfig = ServerConfig()
    storage: StorageConfig = StorageConfig()


def _is_bool_field(section: str, field: str) -> bool:
    section_field = PingfluxConfig.model_fields.get(section)
    if section_field is None:
        return False
    model_field = section_field.annotation.model_fields.get(field)
    return model_field is not None and model_field.annotation is bool


def load_from_env() -> dict[str, Any]:
    """Load configuration from environment variables.

    Environment variables should follow the pattern:
    PINGFLUX_<SECTION>_<KEY>=value

    Examples:
        PINGFLUX_TRACEROUTE_MAX_HOPS=20
        PINGFLUX_TRACEROUTE_COMMAND=mtr
        PINGFLUX_SERVER_PORT=8080
    """
    config = {}
    prefix = "PINGFLUX_"

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        config_key = key[len(prefix) :].lower()
        parts = config_key.split("_", 1)

        if len(parts) != 2:
            continue

        section, field = parts

        # Only bool fields take "yes"/"on"; ``command=yes`` stays a string.
        if _is_bool_field(section, field):
            match value.lower():
                case "true" | "yes" | "on":
                    value = True
                case "false" | "no" | "off":
                    value = False
        elif value.isdigit():
            value = int(value)

        if section not in config:
            config[section] = {}
        config[section][field] = value

    return config


def find_config_file() -> Path | None:
    """Find configuration file in standard locations.

    Search order:
    1. ./pingflux.toml (current directory)
    2. ~/.config/pingflux/config.toml (XDG config)
    3. ~/.pingflux.toml (home directory)
    """
    candidates = [
        Path.cwd() / "pingflux.toml",
        Path.home() / ".config" / "pingflux" / "config.toml",
        Path.home() / ".pingflux.toml",
    ]

    for candidate in candidates:
        if candidate.exists():
            return candidate

    return None


def load_config(config_file: str | Path | None = None) -> PingfluxConfig:
    """Load configuration from multiple sources with proper validation.

    Sources are loaded in this order (later sources override earlier ones):
    1. Default configuration (embedded in code)
    2. Configuration file (TOML format)
    3. Environment variables

    Args:
        config_file: Path to configuration file. If None, will search standard locations.

    Returns:
        Validated configuration object.

    Raises:
        ConfigurationError: If configuration is invalid.
    """
    config_dict: dict[str, Any] = {}

    if isinstance(config_file, str):
        config_file = Path(config_file)
    if config_file is None:
        config_file = find_config_file()

    if config_file and config_file.exists():
        try:
            with open(config_file, "rb") as f:
                file_config = tomllib.load(f)
                config_dict.update(file_config)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigurationError(
                f"Failed to load config file {config_file}: {e}"
            ) from e

    env_config = load_from_env()
    for section, values in env_config.items():
        if section not in config_dict:
            config_dict[section] = {}
        config_dict[section].update(values)

    try:
        return PingfluxConfig(**config_dict)
    except Exception as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e


def create_default_config(output_file: Path) -> None:
    """Create a default configuration file with sensible defaults."""

    toml_content = f"""# pingflux configuration
# Environment variables PINGFLUX_<SECTION>_<KEY> override these values.

[traceroute]
default_target = "{DEFAULT_TARGET}"
# Ceilings: requests are clamped to these values.
max_hops = {DEFAULT_MAX_HOPS}
timeout_ms = {DEFAULT_TIMEOUT_MS}
# command = "mtr"  # Run this executable with the target as its only argument

[server]
host = "127.0.0.1"
port = 3000

[storage]
db_path = "./data/pingflux.db"
"""

    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text(toml_content)


class ConfigurationError(Exception):
    """Configuration-related errors."""

    pass
