"""Tests for definition file loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from flatwire.contracts import Classification, ConfigLoadError
from flatwire.core.config import DefinitionSettings
from flatwire.core.definitions import (
    load_definitions,
    load_enrich,
    load_filter,
    load_path_spec,
    load_route_table,
)
from tests.conftest import path_spec_document, write_json


class TestLoadPathSpec:
    """Tests for path-spec files."""

    def test_loads_levels_and_rules(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "ifaces.json",
            path_spec_document({"interfaces": "dive"}, {"any": "pass", "state": "combine"}),
        )
        path_spec = load_path_spec(path)

        assert path_spec.name == "ifaces"
        assert len(path_spec) == 2
        assert path_spec.classify(0, "interfaces") is Classification.DIVE
        assert path_spec.classify(1, "state") is Classification.COMBINE
        assert path_spec.classify(1, "eth0") is Classification.PASS

    def test_dive_flag_wins_over_combine(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "both.json",
            [{"Node": [{"NodeName": "a", "ToDive": True, "ToCombine": True}]}],
        )
        assert load_path_spec(path).classify(0, "a") is Classification.DIVE

    def test_flags_default_to_pass(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "pass.json", [{"Node": [{"NodeName": "a"}]}])
        assert load_path_spec(path).classify(0, "a") is Classification.PASS

    def test_yaml_accepted(self, tmp_path: Path) -> None:
        path = tmp_path / "spec.yaml"
        path.write_text("- Node:\n    - NodeName: a\n      ToDive: true\n", encoding="utf-8")
        assert load_path_spec(path).classify(0, "a") is Classification.DIVE

    def test_missing_file(self, tmp_path: Path) -> None:
        path = tmp_path / "missing.json"
        with pytest.raises(ConfigLoadError, match="not found") as exc_info:
            load_path_spec(path)
        assert exc_info.value.path == path

    def test_malformed_json(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("[{", encoding="utf-8")
        with pytest.raises(ConfigLoadError, match="malformed"):
            load_path_spec(path)

    def test_zero_levels_rejected(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "empty.json", [])
        with pytest.raises(ConfigLoadError, match="invalid definition"):
            load_path_spec(path)

    def test_level_without_rules_rejected(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "hollow.json", [{"Node": []}])
        with pytest.raises(ConfigLoadError, match="invalid definition"):
            load_path_spec(path)

    def test_unknown_keys_rejected(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "typo.json", [{"Node": [{"NodeName": "a", "ToDiv": True}]}])
        with pytest.raises(ConfigLoadError, match="ToDiv"):
            load_path_spec(path)

    def test_wrong_shape_rejected(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "object.json", {"Node": []})
        with pytest.raises(ConfigLoadError):
            load_path_spec(path)


class TestLoadFilterAndEnrich:
    def test_filter(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "filter.json", [{"item": "a.b"}, {"item": "c.d"}, {"item": "a.b"}])
        assert load_filter(path) == frozenset({"a.b", "c.d"})

    def test_filter_requires_item(self, tmp_path: Path) -> None:
        path = write_json(tmp_path / "filter.json", [{"name": "a.b"}])
        with pytest.raises(ConfigLoadError):
            load_filter(path)

    def test_enrich(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "enrich.json",
            [{"item": {"itemId": "port", "mappings": [{"name": "up", "value": 1}, {"name": "down", "value": 0}]}}],
        )
        assert load_enrich(path) == {"port": (("up", 1), ("down", 0))}

    def test_enrich_entries_for_same_field_are_concatenated(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "enrich.json",
            [
                {"item": {"itemId": "port", "mappings": [{"name": "up", "value": 1}]}},
                {"item": {"itemId": "port", "mappings": [{"name": "up", "value": 9}]}},
            ],
        )
        assert load_enrich(path) == {"port": (("up", 1), ("up", 9))}

    def test_enrich_keeps_scalar_types(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "enrich.json",
            [{"item": {"itemId": "flag", "mappings": [{"name": True, "value": "yes"}, {"name": 3, "value": 1.5}]}}],
        )
        pairs = load_enrich(path)["flag"]
        assert pairs[0][0] is True
        assert pairs[1] == (3, 1.5)
        assert type(pairs[1][0]) is int

    def test_enrich_rejects_nested_values(self, tmp_path: Path) -> None:
        path = write_json(
            tmp_path / "enrich.json",
            [{"item": {"itemId": "port", "mappings": [{"name": {"x": 1}, "value": 1}]}}],
        )
        with pytest.raises(ConfigLoadError):
            load_enrich(path)


class TestLoadRouteTable:
    """Tests for route tables and their path-spec references."""

    def test_registrations(self, definitions_dir: dict[str, Path]) -> None:
        table = load_route_table(definitions_dir["routes"], default_index="telemetry")

        assert list(table) == ["interfaces", "system", "empty"]
        interfaces = table["interfaces"]
        assert [r.name for r in interfaces] == ["interfaces", "counters"]
        assert [r.index for r in interfaces] == ["if-stats", "if-counters"]
        assert all(r.mode == 1 for r in interfaces)

    def test_mode_and_index_defaults(self, definitions_dir: dict[str, Path]) -> None:
        table = load_route_table(definitions_dir["routes"], default_index="telemetry")
        (system,) = table["system"]
        assert system.mode == 2
        assert system.index == "telemetry"

    def test_route_without_paths(self, definitions_dir: dict[str, Path]) -> None:
        table = load_route_table(definitions_dir["routes"], default_index="telemetry")
        assert table["empty"] == ()

    def test_path_mode_overrides_route_mode(self, tmp_path: Path) -> None:
        write_json(tmp_path / "a.json", path_spec_document({"a": "dive"}))
        routes = write_json(
            tmp_path / "routes.json",
            [{"key": "r", "mode": "native", "paths": [{"path": "a.json", "mode": "event"}]}],
        )
        (registration,) = load_route_table(routes, default_index="t")["r"]
        assert registration.mode == 2

    def test_shared_path_spec_loaded_once(self, tmp_path: Path) -> None:
        write_json(tmp_path / "a.json", path_spec_document({"a": "dive"}))
        routes = write_json(
            tmp_path / "routes.json",
            [
                {"key": "r1", "paths": [{"path": "a.json"}]},
                {"key": "r2", "paths": [{"path": "./a.json"}]},
            ],
        )
        table = load_route_table(routes, default_index="t")
        assert table["r1"][0].path_spec is table["r2"][0].path_spec

    def test_relative_paths_resolve_against_route_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        write_json(tmp_path / "defs" / "a.json", path_spec_document({"a": "dive"}))
        routes = write_json(tmp_path / "defs" / "routes.json", [{"key": "r", "paths": [{"path": "a.json"}]}])
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        monkeypatch.chdir(elsewhere)

        assert load_route_table(routes, default_index="t")["r"][0].name == "a"

    def test_missing_path_spec_fails_whole_load(self, tmp_path: Path) -> None:
        write_json(tmp_path / "a.json", path_spec_document({"a": "dive"}))
        routes = write_json(
            tmp_path / "routes.json",
            [{"key": "r", "paths": [{"path": "a.json"}, {"path": "missing.json"}]}],
        )
        with pytest.raises(ConfigLoadError) as exc_info:
            load_route_table(routes, default_index="t")
        assert exc_info.value.path.name == "missing.json"

    def test_empty_path_spec_fails_whole_load(self, tmp_path: Path) -> None:
        write_json(tmp_path / "empty.json", [])
        routes = write_json(tmp_path / "routes.json", [{"key": "r", "paths": [{"path": "empty.json"}]}])
        with pytest.raises(ConfigLoadError):
            load_route_table(routes, default_index="t")

    def test_duplicate_route_key(self, tmp_path: Path) -> None:
        routes = write_json(tmp_path / "routes.json", [{"key": "r"}, {"key": "r"}])
        with pytest.raises(ConfigLoadError, match="duplicate route key"):
            load_route_table(routes, default_index="t")

    @pytest.mark.parametrize("mode", [0, -1, "sideways"])
    def test_invalid_mode(self, tmp_path: Path, mode: object) -> None:
        routes = write_json(tmp_path / "routes.json", [{"key": "r", "mode": mode}])
        with pytest.raises(ConfigLoadError, match="mode"):
            load_route_table(routes, default_index="t")

    @pytest.mark.parametrize("key", ["{device}", "interfaces/{name}", "bad}"])
    def test_route_key_with_braces_rejected(self, tmp_path: Path, key: str) -> None:
        """Braces in a key would become a URL path parameter."""
        routes = write_json(tmp_path / "routes.json", [{"key": key}])
        with pytest.raises(ConfigLoadError, match="must not contain"):
            load_route_table(routes, default_index="t")


class TestLoadDefinitions:
    def test_complete_definitions(self, definitions_dir: dict[str, Path]) -> None:
        definitions = load_definitions(
            DefinitionSettings(
                routes_file=definitions_dir["routes"],
                filter_file=definitions_dir["filter"],
                enrich_file=definitions_dir["enrich"],
            ),
            default_index="telemetry",
        )
        assert definitions.route_keys == ["interfaces", "system", "empty"]
        assert definitions.filter_spec == frozenset({"interfaces.debug"})
        assert definitions.enrich_spec["state.oper-status"] == (("UP", 1), ("DOWN", 2))

    def test_optional_files(self, definitions_dir: dict[str, Path]) -> None:
        definitions = load_definitions(
            DefinitionSettings(routes_file=definitions_dir["routes"]),
            default_index="telemetry",
        )
        assert definitions.filter_spec == frozenset()
        assert dict(definitions.enrich_spec) == {}

    def test_missing_route_table(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigLoadError, match="not found"):
            load_definitions(DefinitionSettings(routes_file=tmp_path / "nope.json"), default_index="t")
