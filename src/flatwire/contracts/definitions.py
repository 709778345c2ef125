# src/flatwire/contracts/definitions.py
"""Read-only process-wide definitions.

Definitions are built once at startup by flatwire.core.definitions and
shared by reference with every dispatch task. Nothing here is mutated
after construction.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from flatwire.contracts.pathspec import PathSpec
from flatwire.contracts.tree import Scalar

type FilterSpec = frozenset[str]
type EnrichSpec = Mapping[str, tuple[tuple[Scalar, Scalar], ...]]


@dataclass(frozen=True)
class Registration:
    """One way of flattening the messages of a route.

    Attributes:
        name: Registration identifier (path-spec file stem)
        path_spec: Levels applied to the message
        mode: Prefix-depth mode for scalar keys
        index: Document store index receiving the records
    """

    name: str
    path_spec: PathSpec
    mode: int
    index: str


@dataclass(frozen=True)
class Definitions:
    """Route table plus post-processing rules.

    Attributes:
        routes: Route key -> ordered registrations
        filter_spec: Field names removed from every record
        enrich_spec: Field name -> (expected value, code) pairs
    """

    routes: Mapping[str, tuple[Registration, ...]]
    filter_spec: FilterSpec = frozenset()
    enrich_spec: EnrichSpec = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.routes, MappingProxyType):
            object.__setattr__(self, "routes", MappingProxyType(dict(self.routes)))
        if not isinstance(self.enrich_spec, MappingProxyType):
            object.__setattr__(self, "enrich_spec", MappingProxyType(dict(self.enrich_spec)))

    def registrations_for(self, route_key: str) -> tuple[Registration, ...]:
        """Registrations of a route; empty for unknown keys."""
        return self.routes.get(route_key, ())

    @property
    def route_keys(self) -> list[str]:
        return list(self.routes)
