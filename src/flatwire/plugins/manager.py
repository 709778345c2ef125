# src/flatwire/plugins/manager.py
"""Plugin manager for sink discovery and instantiation.

Uses pluggy for hook-based plugin registration.
"""

from typing import Any

import pluggy

from flatwire.plugins.hookspecs import PROJECT_NAME, FlatwireSinkSpec, hookimpl
from flatwire.plugins.sinks.base import BaseSink


class _BuiltinSinks:
    """Hook implementation registering the built-in sinks."""

    @hookimpl
    def flatwire_get_sinks(self) -> list[type[BaseSink]]:
        from flatwire.plugins.sinks.elasticsearch import ElasticsearchSink
        from flatwire.plugins.sinks.jsonl import JSONLSink

        return [ElasticsearchSink, JSONLSink]


class PluginManager:
    """Manages sink plugin registration and lookup.

    Usage:
        manager = PluginManager()
        manager.register_builtin_plugins()

        sink = manager.create_sink("elasticsearch", {"host": "es01"})
    """

    def __init__(self) -> None:
        self._pm = pluggy.PluginManager(PROJECT_NAME)
        self._pm.add_hookspecs(FlatwireSinkSpec)
        self._sinks: dict[str, type[BaseSink]] = {}

    def register_builtin_plugins(self) -> None:
        """Register the sinks shipped with flatwire."""
        self.register(_BuiltinSinks())

    def register(self, plugin: Any) -> None:
        """Register a plugin.

        Args:
            plugin: Plugin instance implementing hook methods
        """
        self._pm.register(plugin)
        self._refresh_caches()

    def _refresh_caches(self) -> None:
        """Refresh sink cache from hooks.

        Raises:
            ValueError: If two sinks register the same name
        """
        new_sinks: dict[str, type[BaseSink]] = {}
        for sinks in self._pm.hook.flatwire_get_sinks():
            for cls in sinks:
                name = cls.name
                if name in new_sinks:
                    raise ValueError(f"Duplicate sink plugin name: '{name}'. Already registered by {new_sinks[name].__name__}")
                new_sinks[name] = cls
        self._sinks = new_sinks

    def get_sinks(self) -> list[type[BaseSink]]:
        """Get all registered sink classes."""
        return list(self._sinks.values())

    def get_sink_by_name(self, name: str) -> type[BaseSink]:
        """Get sink class by name.

        Raises:
            ValueError: If no sink is registered under that name
        """
        if name not in self._sinks:
            available = sorted(self._sinks)
            raise ValueError(f"Unknown sink plugin: {name}. Available: {available}")
        return self._sinks[name]

    def create_sink(self, name: str, options: dict[str, Any]) -> BaseSink:
        """Instantiate a sink from its name and options."""
        return self.get_sink_by_name(name)(options)
