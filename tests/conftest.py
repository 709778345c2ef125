# tests/conftest.py
"""Shared test fixtures and helpers.

Test Helpers:
- RecordingSink: DocumentSink that records every write() (thread-safe)
- FailingSink: DocumentSink that raises on chosen indexes
- spec(): Build a PathSpec from compact level tuples
- write_definitions(): Lay out a complete definitions directory on disk

Hypothesis Configuration:
- "ci" profile: Fast tests for CI (100 examples) - default
- "nightly" profile: Thorough tests (1000 examples)
- "debug" profile: Minimal tests with verbose output (10 examples)

Set profile via environment variable:
    HYPOTHESIS_PROFILE=nightly pytest tests/property/
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path
from typing import Any

import pytest
from hypothesis import Phase, Verbosity, settings

from flatwire.contracts import Classification, Level, NodeRule, PathSpec, SinkError

# =============================================================================
# Hypothesis Configuration
# =============================================================================

settings.register_profile(
    "ci",
    max_examples=100,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,  # Disable deadline for CI (timing varies)
)

settings.register_profile(
    "nightly",
    max_examples=1000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
    deadline=None,
)

settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


# =============================================================================
# Path spec helpers
# =============================================================================

DIVE = Classification.DIVE
COMBINE = Classification.COMBINE
PASS = Classification.PASS


def spec(*levels: dict[str, Classification], name: str = "test") -> PathSpec:
    """Build a PathSpec from one {name: classification} dict per level.

    Example:
        spec({"a": DIVE}, {"b": DIVE, "any": PASS})
    """
    return PathSpec(
        name=name,
        levels=tuple(Level(tuple(NodeRule(rule_name, c) for rule_name, c in level.items())) for level in levels),
    )


# =============================================================================
# Sinks
# =============================================================================


class RecordingSink:
    """DocumentSink that records every write call.

    Safe to share between dispatch threads.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[dict[str, Any]]]] = []
        self._lock = threading.Lock()

    def write(self, index: str, records: list[dict[str, Any]]) -> None:
        with self._lock:
            self.calls.append((index, [dict(r) for r in records]))

    @property
    def indexes(self) -> list[str]:
        with self._lock:
            return [index for index, _ in self.calls]

    def records_for(self, index: str) -> list[dict[str, Any]]:
        with self._lock:
            return [record for call_index, records in self.calls if call_index == index for record in records]


class FailingSink(RecordingSink):
    """RecordingSink that raises SinkError for chosen indexes."""

    def __init__(self, failing: set[str], *, retryable: bool = False, exception: type[Exception] | None = None) -> None:
        super().__init__()
        self._failing = failing
        self._retryable = retryable
        self._exception = exception
        self.attempts: dict[str, int] = {}

    def write(self, index: str, records: list[dict[str, Any]]) -> None:
        with self._lock:
            self.attempts[index] = self.attempts.get(index, 0) + 1
        if index in self._failing:
            if self._exception is not None:
                raise self._exception(f"boom on {index}")
            raise SinkError(index, "simulated failure", retryable=self._retryable)
        super().write(index, records)


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


# =============================================================================
# Definition files
# =============================================================================


def path_spec_document(*levels: dict[str, str]) -> list[dict[str, Any]]:
    """Path-spec file content from one {name: "dive"|"combine"|"pass"} dict per level."""
    return [
        {
            "Node": [
                {"NodeName": name, "ToDive": kind == "dive", "ToCombine": kind == "combine"}
                for name, kind in level.items()
            ]
        }
        for level in levels
    ]


def write_json(path: Path, content: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(content), encoding="utf-8")
    return path


def write_definitions(root: Path) -> dict[str, Path]:
    """Write a small but complete definitions directory.

    Layout:
        root/routes.json         -- "interfaces" (2 specs), "system" (1 spec), "empty" (0)
        root/paths/*.json        -- path specs
        root/filter.json         -- removes "interfaces.debug"
        root/enrich.json         -- "state.oper-status": UP -> 1, DOWN -> 2

    Returns:
        Mapping of logical name -> file path
    """
    paths = {
        "interfaces": write_json(
            root / "paths" / "interfaces.json",
            path_spec_document({"interfaces": "dive"}, {"eth0": "pass", "any": "pass", "state": "combine"}),
        ),
        "counters": write_json(
            root / "paths" / "counters.json",
            path_spec_document({"interfaces": "dive"}, {"any": "dive"}),
        ),
        "system": write_json(
            root / "paths" / "system.json",
            path_spec_document({"system": "pass"}),
        ),
    }
    routes = write_json(
        root / "routes.json",
        [
            {
                "key": "interfaces",
                "mode": "native",
                "index": "if-stats",
                "paths": [
                    {"path": "paths/interfaces.json"},
                    {"path": "paths/counters.json", "index": "if-counters"},
                ],
            },
            {"key": "system", "mode": 2, "paths": [{"path": "paths/system.json"}]},
            {"key": "empty", "paths": []},
        ],
    )
    filter_file = write_json(root / "filter.json", [{"item": "interfaces.debug"}])
    enrich_file = write_json(
        root / "enrich.json",
        [
            {
                "item": {
                    "itemId": "state.oper-status",
                    "mappings": [{"name": "UP", "value": 1}, {"name": "DOWN", "value": 2}],
                }
            }
        ],
    )
    return {**paths, "routes": routes, "filter": filter_file, "enrich": enrich_file}


@pytest.fixture
def definitions_dir(tmp_path: Path) -> dict[str, Path]:
    """Complete definitions directory under tmp_path/definitions."""
    return write_definitions(tmp_path / "definitions")


@pytest.fixture
def settings_file(tmp_path: Path, definitions_dir: dict[str, Path]) -> Path:
    """Settings YAML pointing at the definitions directory with a JSONL sink."""
    path = tmp_path / "settings.yaml"
    path.write_text(
        "\n".join(
            [
                "definitions:",
                "  routes_file: definitions/routes.json",
                "  filter_file: definitions/filter.json",
                "  enrich_file: definitions/enrich.json",
                "default_index: telemetry",
                "sink:",
                "  plugin: jsonl",
                "  options:",
                f"    directory: {tmp_path / 'out'}",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return path
