# src/flatwire/core/__init__.py
"""Core infrastructure: Configuration, Definition loading, Logging."""

from flatwire.core.config import (
    ConcurrencySettings,
    DefinitionSettings,
    FlatwireSettings,
    FlattenSettings,
    RetrySettings,
    ServerSettings,
    SinkSettings,
    load_settings,
)
from flatwire.core.definitions import (
    load_definitions,
    load_enrich,
    load_filter,
    load_path_spec,
    load_route_table,
)
from flatwire.core.logging import configure_logging, get_logger

__all__ = [
    "ConcurrencySettings",
    "DefinitionSettings",
    "FlattenSettings",
    "FlatwireSettings",
    "RetrySettings",
    "ServerSettings",
    "SinkSettings",
    "configure_logging",
    "get_logger",
    "load_definitions",
    "load_enrich",
    "load_filter",
    "load_path_spec",
    "load_route_table",
]
