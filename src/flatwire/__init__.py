"""
Flatwire: schema-driven flattening of streaming device telemetry.

Nested telemetry payloads are classified level by level against declarative
path specifications and emitted as flat records for a document store.
"""

__version__ = "0.1.0"
