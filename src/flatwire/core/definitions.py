# src/flatwire/core/definitions.py
"""Loading of declarative definition files.

Four kinds of files feed the flattening engine:

- route table: route key -> ordered list of path-spec file references
- path spec: ordered list of levels, each a list of node rules
- filter: field names removed from every record
- enrich: per-field (expected value -> code) mappings

Files are JSON (YAML is accepted for .yaml/.yml). Loading is eager and
fails fast: any missing, unreadable or malformed file raises
ConfigLoadError naming that file, so the service never starts with a
partial route table.

Example route table:
    [
      {"key": "interfaces", "mode": "native", "index": "if-stats",
       "paths": [{"path": "paths/interfaces.json"},
                 {"path": "paths/subinterfaces.json", "mode": 2}]}
    ]

Example path spec (one entry per level):
    [
      {"Node": [{"NodeName": "interfaces", "ToDive": true, "ToCombine": false}]},
      {"Node": [{"NodeName": "any", "ToDive": false, "ToCombine": false}]}
    ]
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated, Any

import structlog
import yaml
from pydantic import BaseModel, BeforeValidator, Field, TypeAdapter, ValidationError, field_validator

from flatwire.contracts import (
    ConfigLoadError,
    Definitions,
    EnrichSpec,
    FilterSpec,
    Level,
    Mode,
    NodeRule,
    PathSpec,
    Registration,
)
from flatwire.core.config import DefinitionSettings

logger = structlog.get_logger(__name__)


def _parse_mode(value: Any) -> Any:
    """Accept mode names (native, cadence, event) as well as integers."""
    if isinstance(value, str):
        try:
            return Mode[value.strip().upper()].value
        except KeyError:
            names = ", ".join(name.lower() for name in Mode.__members__)
            raise ValueError(f"unknown mode {value!r}; expected a positive integer or one of: {names}") from None
    return value


ModeValue = Annotated[int, BeforeValidator(_parse_mode), Field(ge=1)]
ScalarValue = bool | int | float | str


class NodeRuleDefinition(BaseModel):
    """One node rule as written in a path-spec file."""

    model_config = {"frozen": True, "extra": "forbid"}

    node_name: str = Field(alias="NodeName", min_length=1)
    to_dive: bool = Field(default=False, alias="ToDive")
    to_combine: bool = Field(default=False, alias="ToCombine")

    def to_rule(self) -> NodeRule:
        return NodeRule.from_flags(self.node_name, dive=self.to_dive, combine=self.to_combine)


class LevelDefinition(BaseModel):
    """One level as written in a path-spec file."""

    model_config = {"frozen": True, "extra": "forbid"}

    nodes: list[NodeRuleDefinition] = Field(alias="Node", min_length=1)


class PathReference(BaseModel):
    """Path-spec file reference inside a route entry."""

    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(min_length=1)
    mode: ModeValue | None = None
    index: str | None = Field(default=None, min_length=1)


class RouteDefinition(BaseModel):
    """One route entry of the route table."""

    model_config = {"frozen": True, "extra": "forbid"}

    key: str = Field(min_length=1)
    mode: ModeValue = Mode.NATIVE.value
    index: str | None = Field(default=None, min_length=1)
    paths: list[PathReference] = Field(default_factory=list)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Route keys become URL paths; braces would turn into path parameters."""
        if "{" in v or "}" in v:
            raise ValueError(f"route key must not contain '{{' or '}}', got {v!r}")
        return v


class FilterEntry(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    item: str = Field(min_length=1)


class EnrichMapping(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    name: ScalarValue
    value: ScalarValue


class EnrichItem(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    item_id: str = Field(alias="itemId", min_length=1)
    mappings: list[EnrichMapping] = Field(default_factory=list)


class EnrichEntry(BaseModel):
    model_config = {"frozen": True, "extra": "forbid"}

    item: EnrichItem


_PATH_SPEC_ADAPTER = TypeAdapter(Annotated[list[LevelDefinition], Field(min_length=1)])
_ROUTE_TABLE_ADAPTER = TypeAdapter(list[RouteDefinition])
_FILTER_ADAPTER = TypeAdapter(list[FilterEntry])
_ENRICH_ADAPTER = TypeAdapter(list[EnrichEntry])


def _read_document(path: Path) -> Any:
    """Read and decode a JSON (or YAML) definition file.

    Raises:
        ConfigLoadError: If the file is missing, unreadable or not decodable
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as e:
        raise ConfigLoadError(path, "definition file not found") from e
    except OSError as e:
        raise ConfigLoadError(path, f"cannot read definition file: {e}") from e

    try:
        if path.suffix.lower() in (".yaml", ".yml"):
            return yaml.safe_load(text)
        return json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigLoadError(path, f"malformed definition file: {e}") from e


def _validate[T](adapter: TypeAdapter[T], data: Any, path: Path) -> T:
    """Validate decoded data, converting pydantic errors to ConfigLoadError."""
    try:
        return adapter.validate_python(data)
    except ValidationError as e:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors())
        raise ConfigLoadError(path, f"invalid definition: {problems}") from e


def load_path_spec(path: Path) -> PathSpec:
    """Load one path-spec file.

    Args:
        path: Path-spec file (list of levels)

    Returns:
        Immutable PathSpec named after the file stem

    Raises:
        ConfigLoadError: If the file is missing or malformed
    """
    levels = _validate(_PATH_SPEC_ADAPTER, _read_document(path), path)
    return PathSpec(
        name=path.stem,
        levels=tuple(Level(tuple(node.to_rule() for node in level.nodes)) for level in levels),
    )


def load_filter(path: Path) -> FilterSpec:
    """Load a filter file into the set of field names to remove."""
    entries = _validate(_FILTER_ADAPTER, _read_document(path), path)
    return frozenset(entry.item for entry in entries)


def load_enrich(path: Path) -> EnrichSpec:
    """Load an enrich file into field -> ((expected value, code), ...).

    Entries naming the same field are concatenated in file order, so the
    last matching mapping still wins at enrichment time.
    """
    entries = _validate(_ENRICH_ADAPTER, _read_document(path), path)
    merged: dict[str, list[tuple[Any, Any]]] = {}
    for entry in entries:
        pairs = merged.setdefault(entry.item.item_id, [])
        pairs.extend((mapping.name, mapping.value) for mapping in entry.item.mappings)
    return {field: tuple(pairs) for field, pairs in merged.items()}


def load_route_table(path: Path, *, default_index: str) -> dict[str, tuple[Registration, ...]]:
    """Load a route table and every path spec it references.

    Relative path-spec references resolve against the route table's
    directory. A path spec referenced by several routes is loaded once.

    Args:
        path: Route table file
        default_index: Index for registrations that do not name one

    Returns:
        Route key -> ordered registrations

    Raises:
        ConfigLoadError: If the route table or any referenced file is
            missing or malformed, or a route key is declared twice
    """
    routes = _validate(_ROUTE_TABLE_ADAPTER, _read_document(path), path)
    base_dir = path.parent
    spec_cache: dict[Path, PathSpec] = {}
    table: dict[str, tuple[Registration, ...]] = {}

    for route in routes:
        if route.key in table:
            raise ConfigLoadError(path, f"duplicate route key '{route.key}'")

        registrations: list[Registration] = []
        for reference in route.paths:
            spec_path = Path(reference.path)
            if not spec_path.is_absolute():
                spec_path = base_dir / spec_path
            spec_path = spec_path.resolve()

            if spec_path not in spec_cache:
                spec_cache[spec_path] = load_path_spec(spec_path)

            registrations.append(
                Registration(
                    name=spec_path.stem,
                    path_spec=spec_cache[spec_path],
                    mode=reference.mode if reference.mode is not None else route.mode,
                    index=reference.index or route.index or default_index,
                )
            )
        table[route.key] = tuple(registrations)

    return table


def load_definitions(settings: DefinitionSettings, *, default_index: str) -> Definitions:
    """Load the route table, filter and enrich files.

    Args:
        settings: Definition file locations
        default_index: Index for registrations that do not name one

    Returns:
        Read-only Definitions shared by the dispatch coordinator

    Raises:
        ConfigLoadError: If any definition file is missing or malformed
    """
    routes = load_route_table(settings.routes_file, default_index=default_index)
    filter_spec = load_filter(settings.filter_file) if settings.filter_file is not None else frozenset()
    enrich_spec = load_enrich(settings.enrich_file) if settings.enrich_file is not None else {}

    definitions = Definitions(routes=routes, filter_spec=filter_spec, enrich_spec=enrich_spec)
    logger.info(
        "definitions_loaded",
        routes=len(routes),
        registrations=sum(len(regs) for regs in routes.values()),
        filtered_fields=len(filter_spec),
        enriched_fields=len(enrich_spec),
    )
    return definitions
