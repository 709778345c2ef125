# src/flatwire/contracts/pathspec.py
"""Path specification model.

A PathSpec is an ordered sequence of levels. Each level holds node rules
that classify the object/array fields found at that depth of a telemetry
tree:

- DIVE: descend immediately, ahead of Combine/Pass siblings
- COMBINE: descend, but never start an independent record at the terminal
- PASS: descend with the lowest visiting priority

A rule named "any" is a wildcard. An exact-name rule at the same level
always wins over the wildcard. The wildcard only steers descent: whether a
terminal branch emits a record is decided by literal rules alone.

PathSpecs are immutable after loading and are shared read-only across
dispatch tasks.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import IntEnum, StrEnum

WILDCARD = "any"


class Mode(IntEnum):
    """Named prefix-depth modes.

    Mode selects which ancestor segment of the path prefixes a scalar's key.
    Native encodings key off the nearest ancestor; cadence and event
    encodings wrap payloads in one extra layer and key off the ancestor
    one level further up.
    """

    NATIVE = 1
    CADENCE = 2
    EVENT = 2


class Classification(StrEnum):
    """Outcome of classifying a field name against a level."""

    DIVE = "dive"
    COMBINE = "combine"
    PASS = "pass"
    UNMATCHED = "unmatched"


@dataclass(frozen=True, slots=True)
class NodeRule:
    """Classification rule for one field name at one level."""

    name: str
    classification: Classification

    def __post_init__(self) -> None:
        if self.classification is Classification.UNMATCHED:
            raise ValueError(f"Rule '{self.name}' cannot be declared UNMATCHED")

    @classmethod
    def from_flags(cls, name: str, *, dive: bool, combine: bool) -> NodeRule:
        """Build a rule from definition-file flags (dive wins over combine)."""
        if dive:
            return cls(name, Classification.DIVE)
        if combine:
            return cls(name, Classification.COMBINE)
        return cls(name, Classification.PASS)

    @property
    def is_wildcard(self) -> bool:
        return self.name == WILDCARD


@dataclass(frozen=True)
class Level:
    """Set of node rules for one depth of the tree.

    When a level declares the same name twice, the first declaration wins.
    """

    rules: tuple[NodeRule, ...]
    _exact: dict[str, Classification] = field(init=False, repr=False, compare=False)
    _wildcard: Classification = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.rules:
            raise ValueError("Level must declare at least one node rule")
        exact: dict[str, Classification] = {}
        wildcard = Classification.UNMATCHED
        for rule in self.rules:
            if rule.is_wildcard:
                if wildcard is Classification.UNMATCHED:
                    wildcard = rule.classification
            else:
                exact.setdefault(rule.name, rule.classification)
        # frozen dataclass: lookup tables are derived once
        object.__setattr__(self, "_exact", exact)
        object.__setattr__(self, "_wildcard", wildcard)

    def classify(self, field_name: str) -> Classification:
        """Classify a field name; exact match wins over the wildcard."""
        exact = self._exact.get(field_name)
        if exact is not None:
            return exact
        return self._wildcard

    def exact(self, field_name: str) -> Classification:
        """Classify a field name against literal rules only, ignoring the wildcard."""
        return self._exact.get(field_name, Classification.UNMATCHED)


@dataclass(frozen=True)
class PathSpec:
    """Ordered levels describing one way to interpret a tree shape.

    Attributes:
        name: Identifier of the spec (usually its definition file stem)
        levels: Levels 0..L-1, at least one
    """

    name: str
    levels: tuple[Level, ...]

    def __post_init__(self) -> None:
        if not self.levels:
            raise ValueError(f"PathSpec '{self.name}' must declare at least one level")

    def __len__(self) -> int:
        return len(self.levels)

    def __iter__(self) -> Iterator[Level]:
        return iter(self.levels)

    def classify(self, level_index: int, field_name: str) -> Classification:
        """Classify a field against the rules of the given level."""
        return self.levels[level_index].classify(field_name)

    def exact(self, level_index: int, field_name: str) -> Classification:
        """Literal-name classification at the given level."""
        return self.levels[level_index].exact(field_name)
