# src/flatwire/core/config.py
"""
Configuration schema and loading for flatwire.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction.

The settings file only points at the declarative definition files
(route table, filter, enrich); those are loaded separately by
flatwire.core.definitions so that a malformed definition fails startup
with a ConfigLoadError naming the offending file.
"""

import re
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class DefinitionSettings(BaseModel):
    """Locations of the declarative definition files.

    Example YAML:
        definitions:
          routes_file: ./definitions/routes.json
          filter_file: ./definitions/filter.json
          enrich_file: ./definitions/enrich.json
    """

    model_config = {"frozen": True}

    routes_file: Path = Field(description="Route table: route key -> path-spec files")
    filter_file: Path | None = Field(
        default=None,
        description="Field names removed from every record",
    )
    enrich_file: Path | None = Field(
        default=None,
        description="Value -> code mappings producing '<field>/code' fields",
    )


class SinkSettings(BaseModel):
    """Document sink plugin configuration."""

    model_config = {"frozen": True}

    plugin: str = Field(
        default="elasticsearch",
        description="Sink plugin name (elasticsearch, jsonl)",
    )
    options: dict[str, Any] = Field(
        default_factory=dict,
        description="Plugin-specific configuration options",
    )


class ConcurrencySettings(BaseModel):
    """Dispatch concurrency configuration.

    max_workers=None keeps unbounded fire-and-forget dispatch: one thread
    per (message, registration), no backpressure. Setting it bounds the
    number of concurrently running tasks; excess tasks queue in memory.
    """

    model_config = {"frozen": True}

    max_workers: int | None = Field(
        default=None,
        gt=0,
        description="Bounded worker pool size (None = one thread per task)",
    )


class RetrySettings(BaseModel):
    """Sink retry behavior configuration.

    The default of a single attempt drops a failed batch immediately.
    """

    model_config = {"frozen": True}

    max_attempts: int = Field(default=1, gt=0, description="Maximum write attempts per batch")
    initial_delay_seconds: float = Field(default=1.0, gt=0, description="Initial backoff delay")
    max_delay_seconds: float = Field(default=30.0, gt=0, description="Maximum backoff delay")
    exponential_base: float = Field(default=2.0, gt=1.0, description="Exponential backoff base")


class FlattenSettings(BaseModel):
    """Flattening behavior switches."""

    model_config = {"frozen": True}

    gate_on_unmatched: bool = Field(
        default=True,
        description="Suppress terminal records whose parent had unclassified container fields",
    )


class ServerSettings(BaseModel):
    """Ingest server binding."""

    model_config = {"frozen": True}

    host: str = Field(default="127.0.0.1", description="Host address to bind to")
    port: int = Field(default=8080, ge=1, le=65535, description="Port to listen on")


class FlatwireSettings(BaseModel):
    """Top-level flatwire configuration.

    All settings are validated and frozen after construction.
    """

    model_config = {"frozen": True}

    definitions: DefinitionSettings = Field(description="Declarative definition files")
    default_index: str = Field(
        default="telemetry",
        description="Index for registrations that do not name one",
    )
    sink: SinkSettings = Field(
        default_factory=SinkSettings,
        description="Document sink configuration",
    )
    concurrency: ConcurrencySettings = Field(
        default_factory=ConcurrencySettings,
        description="Dispatch concurrency configuration",
    )
    retry: RetrySettings = Field(
        default_factory=RetrySettings,
        description="Sink retry configuration",
    )
    flatten: FlattenSettings = Field(
        default_factory=FlattenSettings,
        description="Flattening behavior",
    )
    server: ServerSettings = Field(
        default_factory=ServerSettings,
        description="Ingest server binding",
    )

    @field_validator("default_index")
    @classmethod
    def validate_index_name(cls, v: str) -> str:
        """Index names are lowercase and non-empty in Elasticsearch."""
        if not v or v != v.lower():
            raise ValueError(f"default_index must be a non-empty lowercase name, got {v!r}")
        return v


# Regex pattern for ${VAR} or ${VAR:-default} syntax
_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def _expand_env_vars(config: dict[str, Any]) -> dict[str, Any]:
    """Recursively expand ${VAR} and ${VAR:-default} patterns in config values.

    Args:
        config: Configuration dict (may contain nested structures)

    Returns:
        New dict with environment variables expanded
    """
    import os

    def _expand_string(value: str) -> str:
        def replacer(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default = match.group(2)
            env_value = os.environ.get(var_name)
            if env_value is not None:
                return env_value
            if default is not None:
                return default
            # No env var and no default - keep original (validation reports it)
            return match.group(0)

        return _ENV_VAR_PATTERN.sub(replacer, value)

    def _expand_value(value: Any) -> Any:
        if isinstance(value, str):
            return _expand_string(value)
        elif isinstance(value, dict):
            return {k: _expand_value(v) for k, v in value.items()}
        elif isinstance(value, list):
            return [_expand_value(item) for item in value]
        else:
            return value

    return {k: _expand_value(v) for k, v in config.items()}


def _resolve_relative_paths(config: dict[str, Any], base_dir: Path) -> dict[str, Any]:
    """Resolve relative definition file paths against the settings file directory."""
    definitions = config.get("definitions")
    if not isinstance(definitions, dict):
        return config
    resolved = dict(definitions)
    for key in ("routes_file", "filter_file", "enrich_file"):
        value = resolved.get(key)
        if isinstance(value, str) and value and not Path(value).is_absolute():
            resolved[key] = str(base_dir / value)
    return {**config, "definitions": resolved}


def load_settings(config_path: Path) -> FlatwireSettings:
    """Load settings from YAML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (FLATWIRE_*) - highest priority
    2. Config file (settings.yaml)
    3. Defaults from Pydantic schema - lowest priority

    Environment variable format: FLATWIRE_SINK__PLUGIN for nested keys.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated FlatwireSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="FLATWIRE",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; convert to lowercase for Pydantic
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = {k.lower(): v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys}

    raw_config = _expand_env_vars(raw_config)
    raw_config = _resolve_relative_paths(raw_config, config_path.resolve().parent)

    return FlatwireSettings(**raw_config)
