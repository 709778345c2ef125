# tests/strategies/__init__.py
"""Hypothesis strategies for property-based tests.

Re-exports commonly used strategies for convenience:
    from tests.strategies import trees, flat_records, STANDARD_SETTINGS
"""

from tests.strategies.settings import DETERMINISM_SETTINGS, QUICK_SETTINGS, STANDARD_SETTINGS
from tests.strategies.trees import field_names, filter_specs, flat_records, scalar_values, trees

__all__ = [
    "DETERMINISM_SETTINGS",
    "QUICK_SETTINGS",
    "STANDARD_SETTINGS",
    "field_names",
    "filter_specs",
    "flat_records",
    "scalar_values",
    "trees",
]
