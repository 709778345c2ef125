# src/flatwire/engine/__init__.py
"""Flatwire engine: flattening, post-processing and dispatch.

This module provides the execution side of flatwire:
- TreeFlattener: Schema-driven flattening of one tree against one path spec
- RecordPostProcessor: Field filtering and value-to-code enrichment
- DispatchCoordinator: Fan-out of inbound messages to concurrent tasks
- RetryManager: Sink write retries with tenacity

Example:
    from flatwire.core.definitions import load_definitions
    from flatwire.engine import DispatchCoordinator

    definitions = load_definitions(settings.definitions, default_index="telemetry")
    coordinator = DispatchCoordinator(definitions, sink)
    coordinator.on_message("interfaces", payload)
"""

from flatwire.engine.dispatch import DispatchCoordinator, DispatchStats
from flatwire.engine.flattener import TreeFlattener, flatten, header_key
from flatwire.engine.postprocess import (
    CODE_SUFFIX,
    RecordPostProcessor,
    enrich_record,
    filter_record,
)
from flatwire.engine.retry import MaxRetriesExceeded, RetryConfig, RetryManager

__all__ = [
    "CODE_SUFFIX",
    "DispatchCoordinator",
    "DispatchStats",
    "MaxRetriesExceeded",
    "RecordPostProcessor",
    "RetryConfig",
    "RetryManager",
    "TreeFlattener",
    "enrich_record",
    "filter_record",
    "flatten",
    "header_key",
]
