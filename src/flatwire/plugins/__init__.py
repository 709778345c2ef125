"""Plugin system: pluggy hookspecs, plugin manager and built-in sinks."""

from flatwire.plugins.hookspecs import hookimpl, hookspec
from flatwire.plugins.manager import PluginManager

__all__ = [
    "PluginManager",
    "hookimpl",
    "hookspec",
]
