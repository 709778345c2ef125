# src/flatwire/contracts/tree.py
"""Tagged view over decoded telemetry trees.

Inbound telemetry arrives as decoded JSON. Rather than re-inspecting Python
types throughout the flattener, each value is discriminated once into a
NodeKind and handled per kind.

Numeric coercion mirrors how device encoders stringify counters: a string
that is a strict base-10 integer becomes an int, a strict decimal/exponent
float becomes a float, anything else is kept verbatim.
"""

from __future__ import annotations

import math
import re
from enum import StrEnum
from typing import Any

from flatwire.contracts.errors import MalformedTreeError

type Scalar = str | int | float | bool
type TreeValue = Scalar | dict[str, TreeValue] | list[TreeValue]

# Signed 64-bit bounds - integers outside them fall through to float parsing
INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_FLOAT_PATTERN = re.compile(r"[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")


class NodeKind(StrEnum):
    """Kind of a tree value."""

    STRING = "string"
    NUMBER = "number"
    BOOL = "bool"
    OBJECT = "object"
    ARRAY = "array"

    @property
    def is_scalar(self) -> bool:
        return self in (NodeKind.STRING, NodeKind.NUMBER, NodeKind.BOOL)


def kind_of(field: str, value: Any) -> NodeKind:
    """Discriminate a decoded JSON value.

    Args:
        field: Field name the value was found under (for error reporting)
        value: Decoded JSON value

    Returns:
        The value's NodeKind

    Raises:
        MalformedTreeError: If value is null or not a JSON type
    """
    # bool before int: bool is an int subclass
    if isinstance(value, bool):
        return NodeKind.BOOL
    if isinstance(value, str):
        return NodeKind.STRING
    if isinstance(value, int | float):
        return NodeKind.NUMBER
    if isinstance(value, dict):
        return NodeKind.OBJECT
    if isinstance(value, list):
        return NodeKind.ARRAY
    if value is None:
        raise MalformedTreeError(field, "null value")
    raise MalformedTreeError(field, f"unsupported value type {type(value).__name__}")


def coerce_scalar(value: str) -> Scalar:
    """Coerce a string scalar to int, then float, else keep it.

    Examples:
        >>> coerce_scalar("42")
        42
        >>> coerce_scalar("3.14")
        3.14
        >>> coerce_scalar("abc")
        'abc'
    """
    if _INT_PATTERN.fullmatch(value):
        number = int(value)
        if INT64_MIN <= number <= INT64_MAX:
            return number
    if _FLOAT_PATTERN.fullmatch(value):
        parsed = float(value)
        if math.isfinite(parsed):
            return parsed
    return value
