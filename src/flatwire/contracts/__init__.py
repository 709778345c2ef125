"""Shared data contracts: tree values, path specs, definitions, errors."""

from flatwire.contracts.definitions import (
    Definitions,
    EnrichSpec,
    FilterSpec,
    Registration,
)
from flatwire.contracts.errors import (
    ConfigLoadError,
    MalformedTreeError,
    SinkError,
)
from flatwire.contracts.pathspec import (
    WILDCARD,
    Classification,
    Level,
    Mode,
    NodeRule,
    PathSpec,
)
from flatwire.contracts.tree import (
    NodeKind,
    Scalar,
    TreeValue,
    coerce_scalar,
    kind_of,
)

__all__ = [
    "WILDCARD",
    "Classification",
    "ConfigLoadError",
    "Definitions",
    "EnrichSpec",
    "FilterSpec",
    "Level",
    "MalformedTreeError",
    "Mode",
    "NodeKind",
    "NodeRule",
    "PathSpec",
    "Registration",
    "Scalar",
    "SinkError",
    "TreeValue",
    "coerce_scalar",
    "kind_of",
]
