# src/flatwire/engine/flattener.py
"""Schema-driven flattening of telemetry trees.

The flattener walks an object tree level by level against a PathSpec:

- Scalars at the current object are written into a shared header under a
  dotted key ``<ancestor>.<field>``. ``mode`` selects the ancestor: the
  nearest one for mode 1, one further up for mode 2.
- Object/array fields are classified against the current level and
  visited Dive first, then Combine, then Pass. Unmatched fields are
  dropped and mark the node as incompletely classified.
- Arrays fan out: every object element is visited at the same level with
  the same path stack.
- When the level index reaches the length of the spec the branch is
  terminal. A terminal whose name has a literal Dive/Pass rule in the last
  level emits a copy of the header. Combine terminals, and terminals
  reached only through the "any" wildcard, emit nothing and leave their
  fields merged into the header for the siblings visited after them.

One header accumulates across the whole traversal. It is copied at every
terminal point, so each record is decoupled from later mutation while the
header keeps collecting fields for sibling branches.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import structlog

from flatwire.contracts import (
    Classification,
    MalformedTreeError,
    NodeKind,
    PathSpec,
    coerce_scalar,
    kind_of,
)
from flatwire.engine.postprocess import RecordPostProcessor

logger = structlog.get_logger(__name__)

# Visiting priority of classified children
_VISIT_ORDER = (Classification.DIVE, Classification.COMBINE, Classification.PASS)


def header_key(stack: tuple[str, ...], field: str, mode: int) -> str:
    """Dotted header key for a scalar field.

    Args:
        stack: Field names from the root to the current object
        field: Scalar field name
        mode: Prefix-depth mode (>= 1)

    Returns:
        ``field`` at the root, ``stack[0].field`` one level down, otherwise
        ``stack[len - mode].field``. A mode deeper than the stack keys off
        the root segment.
    """
    depth = len(stack)
    if depth == 0:
        return field
    if depth == 1 or mode >= depth:
        return f"{stack[0]}.{field}"
    return f"{stack[depth - mode]}.{field}"


class TreeFlattener:
    """Flattens trees against one path spec.

    The flattener itself holds only read-only configuration; each call to
    flatten() owns its own header and output list, so one instance may be
    shared by concurrent tasks.

    Example:
        flattener = TreeFlattener(spec, mode=Mode.NATIVE)
        records = flattener.flatten({"interfaces": {...}})
    """

    def __init__(
        self,
        path_spec: PathSpec,
        mode: int,
        post_processor: RecordPostProcessor | None = None,
        *,
        gate_on_unmatched: bool = True,
    ) -> None:
        """Initialize the flattener.

        Args:
            path_spec: Levels to classify the tree against
            mode: Prefix-depth mode for scalar keys (>= 1)
            post_processor: Applied to each terminal record copy
            gate_on_unmatched: Suppress terminal records whose parent object
                had container fields no rule classified
        """
        if mode < 1:
            raise ValueError(f"mode must be >= 1, got {mode}")
        self._spec = path_spec
        self._mode = mode
        self._post_processor = post_processor
        self._gate_on_unmatched = gate_on_unmatched

    def flatten(self, tree: dict[str, Any]) -> list[dict[str, Any]]:
        """Flatten a tree into terminal records.

        Args:
            tree: Decoded telemetry message (root must be an object)

        Returns:
            Records in emission order

        Raises:
            MalformedTreeError: If the root is not an object
        """
        if not isinstance(tree, dict):
            raise MalformedTreeError("<root>", f"expected an object, got {type(tree).__name__}")
        header: dict[str, Any] = {}
        records: list[dict[str, Any]] = []
        self._visit(tree, 0, (), False, header, records)
        return records

    def _visit(
        self,
        node: dict[str, Any],
        level: int,
        stack: tuple[str, ...],
        parent_keys_left: bool,
        header: dict[str, Any],
        records: list[dict[str, Any]],
    ) -> None:
        terminal = level == len(self._spec)
        buckets: dict[Classification, list[tuple[str, NodeKind, Any]]] = {c: [] for c in _VISIT_ORDER}
        keys_left = False

        for field, value in node.items():
            try:
                kind = kind_of(field, value)
            except MalformedTreeError as e:
                logger.debug("tree_field_skipped", field=field, path=list(stack), reason=e.message)
                continue

            if kind is NodeKind.STRING:
                header[header_key(stack, field, self._mode)] = coerce_scalar(value)
            elif kind.is_scalar:
                header[header_key(stack, field, self._mode)] = value
            elif not terminal:
                classification = self._spec.classify(level, field)
                if classification is Classification.UNMATCHED:
                    keys_left = True
                else:
                    buckets[classification].append((field, kind, value))

        if terminal:
            self._emit(stack, parent_keys_left, header, records)
            return

        for classification in _VISIT_ORDER:
            for field, kind, value in buckets[classification]:
                child_stack = (*stack, field)
                if kind is NodeKind.OBJECT:
                    self._visit(value, level + 1, child_stack, keys_left, header, records)
                else:
                    for element in self._object_elements(field, value, stack):
                        self._visit(element, level + 1, child_stack, keys_left, header, records)

    def _object_elements(self, field: str, elements: list[Any], stack: tuple[str, ...]) -> Iterator[dict[str, Any]]:
        """Yield the object elements of an array, skipping anything else."""
        for position, element in enumerate(elements):
            try:
                kind = kind_of(f"{field}[{position}]", element)
                if kind is not NodeKind.OBJECT:
                    raise MalformedTreeError(f"{field}[{position}]", f"array element is {kind.value}, expected object")
            except MalformedTreeError as e:
                logger.debug("tree_element_skipped", field=e.field, path=list(stack), reason=e.message)
                continue
            yield element

    def _emit(
        self,
        stack: tuple[str, ...],
        parent_keys_left: bool,
        header: dict[str, Any],
        records: list[dict[str, Any]],
    ) -> None:
        if self._gate_on_unmatched and parent_keys_left:
            return
        # Terminal emission matches rule names literally; "any" never emits
        classification = self._spec.exact(len(self._spec) - 1, stack[-1])
        if classification in (Classification.DIVE, Classification.PASS):
            # Header values are scalars, so a shallow copy fully decouples the record
            record = dict(header)
            if self._post_processor is not None:
                self._post_processor.apply(record)
            records.append(record)


def flatten(
    tree: dict[str, Any],
    path_spec: PathSpec,
    mode: int,
    post_processor: RecordPostProcessor | None = None,
    *,
    gate_on_unmatched: bool = True,
) -> list[dict[str, Any]]:
    """Flatten a tree against a path spec.

    Convenience wrapper around TreeFlattener for one-off calls.
    """
    flattener = TreeFlattener(path_spec, mode, post_processor, gate_on_unmatched=gate_on_unmatched)
    return flattener.flatten(tree)
