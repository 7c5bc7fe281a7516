"""
Tests for stock_batch.local_store.

The JSON file store must survive process restarts and never leave a
half-written map behind.
"""

import json

import pytest

from stock_batch.local_store import InMemoryCountStore, JsonFileCountStore


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryCountStore()
    return JsonFileCountStore(tmp_path / "counts")


class TestStoreContract:

    def test_unknown_campaign_loads_empty(self, store):
        assert store.load("missing") == {}

    def test_save_replaces_the_whole_map(self, store):
        store.save("c1", {"a": "1", "b": ""})
        store.save("c1", {"b": "2"})

        assert store.load("c1") == {"b": "2"}

    def test_empty_and_zero_survive_as_typed(self, store):
        store.save("c1", {"cleared": "", "zero": "0", "padded": " 7 "})

        assert store.load("c1") == {"cleared": "", "zero": "0", "padded": " 7 "}

    def test_saving_empty_map_forgets_campaign(self, store):
        store.save("c1", {"a": "1"})
        store.save("c1", {})

        assert store.load("c1") == {}

    def test_clear(self, store):
        store.save("c1", {"a": "1"})
        store.save("c2", {"b": "2"})

        store.clear("c1")

        assert store.load("c1") == {}
        assert store.load("c2") == {"b": "2"}

    def test_loaded_map_is_a_copy(self, store):
        store.save("c1", {"a": "1"})

        store.load("c1")["a"] = "changed"

        assert store.load("c1") == {"a": "1"}


class TestJsonFileCountStore:

    def test_map_survives_a_new_store_instance(self, tmp_path):
        JsonFileCountStore(tmp_path).save("c1", {"a": "3"})

        assert JsonFileCountStore(tmp_path).load("c1") == {"a": "3"}

    def test_file_layout(self, tmp_path):
        store = JsonFileCountStore(tmp_path)

        store.save("c1", {"b": "2", "a": "1"})

        path = tmp_path / "campaign_c1_counts.json"
        assert store.path_for("c1") == path
        assert json.loads(path.read_text(encoding="utf-8")) == {"a": "1", "b": "2"}
        assert [p.name for p in tmp_path.iterdir()] == [path.name]

    def test_empty_map_removes_the_file(self, tmp_path):
        store = JsonFileCountStore(tmp_path)
        store.save("c1", {"a": "1"})

        store.save("c1", {})

        assert not store.path_for("c1").exists()

    def test_corrupt_file_is_treated_as_empty(self, tmp_path, captured_logs):
        store = JsonFileCountStore(tmp_path)
        store.path_for("c1").write_text("{not json", encoding="utf-8")

        assert store.load("c1") == {}
        assert any(r["message"] == "local_count_store_corrupt" for r in captured_logs())

    def test_non_string_values_are_coerced(self, tmp_path):
        store = JsonFileCountStore(tmp_path)
        store.path_for("c1").write_text('{"a": 4}', encoding="utf-8")

        assert store.load("c1") == {"a": "4"}

    def test_failed_write_keeps_previous_map(self, tmp_path, monkeypatch):
        store = JsonFileCountStore(tmp_path)
        store.save("c1", {"a": "1"})

        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr("stock_batch.local_store.os.replace", boom)

        with pytest.raises(OSError):
            store.save("c1", {"a": "2"})

        assert store.load("c1") == {"a": "1"}
        assert [p.name for p in tmp_path.iterdir()] == ["campaign_c1_counts.json"]
