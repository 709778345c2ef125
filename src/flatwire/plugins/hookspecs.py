# src/flatwire/plugins/hookspecs.py
"""pluggy hook specifications for flatwire plugins.

Plugins implement these hooks to register themselves with the framework.

Usage (implementing a plugin):
    from flatwire.plugins.hookspecs import hookimpl

    class MySinkPlugin:
        @hookimpl
        def flatwire_get_sinks(self):
            return [MySink]
"""

from typing import TYPE_CHECKING

import pluggy

if TYPE_CHECKING:
    from flatwire.plugins.sinks.base import BaseSink

PROJECT_NAME = "flatwire"

hookspec = pluggy.HookspecMarker(PROJECT_NAME)

hookimpl = pluggy.HookimplMarker(PROJECT_NAME)


class FlatwireSinkSpec:
    """Hook specifications for sink plugins."""

    @hookspec
    def flatwire_get_sinks(self) -> list[type["BaseSink"]]:  # type: ignore[empty-body]
        """Return sink plugin classes.

        Returns:
            List of Sink plugin classes (not instances)
        """
