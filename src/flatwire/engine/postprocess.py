# src/flatwire/engine/postprocess.py
"""Record post-processing: field removal and derived-field enrichment.

Both operations mutate the record in place. They are applied to the copy
of the header taken at each terminal point, never to the live header.
"""

from __future__ import annotations

from typing import Any

from flatwire.contracts import EnrichSpec, FilterSpec

# Suffix of fields derived by enrichment
CODE_SUFFIX = "/code"


def filter_record(record: dict[str, Any], filter_spec: FilterSpec) -> dict[str, Any]:
    """Delete every field of the record that is named in the filter.

    Absent fields are no-ops, so filtering is idempotent.
    """
    for field in filter_spec:
        record.pop(field, None)
    return record


def enrich_record(record: dict[str, Any], enrich_spec: EnrichSpec) -> dict[str, Any]:
    """Add '<field>/code' for fields whose value matches an enrich mapping.

    Every (expected, code) pair of a present field is evaluated. When
    several pairs match, the last one evaluated wins. A field without a
    matching pair is left untouched and nothing is added.
    """
    for field, mappings in enrich_spec.items():
        if field not in record:
            continue
        current = record[field]
        for expected, code in mappings:
            # bool == int in Python; True must not match an expected 1
            if type(current) is bool or type(expected) is bool:
                if type(current) is not type(expected):
                    continue
            if current == expected:
                record[field + CODE_SUFFIX] = code
    return record


class RecordPostProcessor:
    """Filter-then-enrich pipeline shared read-only across dispatch tasks."""

    def __init__(self, filter_spec: FilterSpec = frozenset(), enrich_spec: EnrichSpec | None = None) -> None:
        self._filter_spec = filter_spec
        self._enrich_spec: EnrichSpec = enrich_spec if enrich_spec is not None else {}

    @property
    def filter_spec(self) -> FilterSpec:
        return self._filter_spec

    @property
    def enrich_spec(self) -> EnrichSpec:
        return self._enrich_spec

    def apply(self, record: dict[str, Any]) -> dict[str, Any]:
        """Filter then enrich a record in place; returns the same record."""
        filter_record(record, self._filter_spec)
        enrich_record(record, self._enrich_spec)
        return record
