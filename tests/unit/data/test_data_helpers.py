from __future__ import annotations

from devloop import data


def test_bundled_defaults_are_listed() -> None:
    names = [path.name for path in data.list_files("config", "*.yaml")]

    assert names == ["defaults.yaml"]


def test_schema_is_read_and_cached() -> None:
    schema = data.read_json("config", "schemas/config.schema.json")

    assert schema["type"] == "object"
    assert data.read_json("config", "schemas/config.schema.json") is schema

    data.clear_caches()
    assert data.read_json("config", "schemas/config.schema.json") is not schema


def test_only_used_helpers_are_exported() -> None:
    assert sorted(data.__all__) == ["clear_caches", "get_data_path", "list_files", "read_json"]
